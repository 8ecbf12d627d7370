"""
Response models returned by the scaffolding pipeline.

TutorResponse is the structured reply for one query. Streaming callers receive
a sequence of TutorEvent values that always ends with exactly one terminal
event (CompleteEvent or ErrorEvent), each carrying a well-formed response.
"""

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel

from archtutor.models.route import QueryType
from archtutor.models.scaffolding import ReductionLevel, SupportLevel


class ResponseType(str, Enum):
    GUIDANCE = "guidance"
    REDIRECT = "redirect"
    CLARIFICATION = "clarification"
    FALLBACK = "fallback"


class TutorResponse(BaseModel):
    message: str
    type: ResponseType
    topic: str | None = None
    query_type: QueryType | None = None
    support_level: SupportLevel
    reduction_level: ReductionLevel
    related_concepts: list[str] = []
    suggested_topics: list[str] = []
    next_steps: list[str] = []
    concepts: list[str] = []


class ChunkEvent(BaseModel):
    event: Literal["chunk"] = "chunk"
    text: str


class CompleteEvent(BaseModel):
    event: Literal["complete"] = "complete"
    response: TutorResponse


class ErrorEvent(BaseModel):
    event: Literal["error"] = "error"
    message: str
    response: TutorResponse


TutorEvent = Union[ChunkEvent, CompleteEvent, ErrorEvent]
