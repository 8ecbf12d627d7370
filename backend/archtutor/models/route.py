from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class QueryType(str, Enum):
    CONCEPT_EXPLANATION = "concept_explanation"
    PROBLEM_SOLVING = "problem_solving"
    COMPARISON = "comparison"
    APPLICATION = "application"
    VERIFICATION = "verification"


class Complexity(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ScaffoldType(str, Enum):
    CONCEPTUAL = "conceptual"
    PROCEDURAL = "procedural"
    STRATEGIC = "strategic"


class TeachingApproach(BaseModel):
    complexity: Complexity
    scaffold_type: ScaffoldType


class InScope(BaseModel):
    kind: Literal["in_scope"] = "in_scope"
    query_type: QueryType
    topic: str
    subtopic: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    related_concepts: list[str] = []
    approach: TeachingApproach


class OutOfScope(BaseModel):
    kind: Literal["out_of_scope"] = "out_of_scope"
    reason: str
    suggested_topics: list[str] = []


class NeedsClarification(BaseModel):
    kind: Literal["needs_clarification"] = "needs_clarification"
    topic: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


RouteResult = Annotated[
    Union[InScope, OutOfScope, NeedsClarification],
    Field(discriminator="kind"),
]
