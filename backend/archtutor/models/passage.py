from typing import Any

from pydantic import BaseModel, Field, field_validator


class RetrievedPassage(BaseModel):
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0

    @field_validator("score")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        # Index adapters report raw similarities; keep them in [0, 1]
        return max(0.0, min(1.0, value))
