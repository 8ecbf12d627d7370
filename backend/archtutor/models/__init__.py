from archtutor.models.feedback import FeedbackRecord
from archtutor.models.passage import RetrievedPassage
from archtutor.models.response import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    ResponseType,
    TutorEvent,
    TutorResponse,
)
from archtutor.models.route import (
    InScope,
    NeedsClarification,
    OutOfScope,
    QueryType,
    RouteResult,
    TeachingApproach,
)
from archtutor.models.scaffolding import ReductionLevel, ScaffoldingContext, SupportLevel
from archtutor.models.session import LearningProgress, Session, SessionSummary, Turn

__all__ = [
    "ChunkEvent",
    "CompleteEvent",
    "ErrorEvent",
    "FeedbackRecord",
    "InScope",
    "LearningProgress",
    "NeedsClarification",
    "OutOfScope",
    "QueryType",
    "ReductionLevel",
    "ResponseType",
    "RetrievedPassage",
    "RouteResult",
    "ScaffoldingContext",
    "Session",
    "SessionSummary",
    "SupportLevel",
    "TeachingApproach",
    "TutorEvent",
    "TutorResponse",
    "Turn",
]
