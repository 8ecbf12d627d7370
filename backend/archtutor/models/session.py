from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from archtutor.models.scaffolding import ReductionLevel, SupportLevel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """One user query paired with the tutor's response."""

    model_config = ConfigDict(frozen=True)

    query: str
    response: str
    timestamp: datetime = Field(default_factory=utcnow)
    topic: str | None = None
    topic_confidence: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    feedback: dict[str, Any] | None = None


@dataclass
class Session:
    session_id: str
    max_turns: int
    turns: deque = field(init=False)
    topics_seen: set[str] = field(default_factory=set)
    current_topic: str | None = None
    support_level: SupportLevel = SupportLevel.HIGH
    reduction_level: ReductionLevel = ReductionLevel.NONE
    total_turns: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.turns = deque(maxlen=self.max_turns)


class SessionSummary(BaseModel):
    session_id: str
    turn_count: int
    topics: list[str]
    last_interaction_time: datetime | None = None


class LearningProgress(BaseModel):
    """What the learner has shown they understand, from recent turns and feedback."""

    mastered: list[str] = Field(default_factory=list)
    needs_work: list[str] = Field(default_factory=list)
    current_level: str = "beginner"
    recent_focus: list[str] = Field(default_factory=list)
