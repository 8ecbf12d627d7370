from enum import Enum

from pydantic import BaseModel


class SupportLevel(str, Enum):
    HIGH = "high_support"
    MEDIUM = "medium_support"
    LOW = "low_support"


class ReductionLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Ordered from most help to least help
SUPPORT_ORDER = [SupportLevel.HIGH, SupportLevel.MEDIUM, SupportLevel.LOW]

# Ordered from no reduction to strongest reduction
REDUCTION_ORDER = [
    ReductionLevel.NONE,
    ReductionLevel.LOW,
    ReductionLevel.MEDIUM,
    ReductionLevel.HIGH,
]


class ScaffoldingContext(BaseModel):
    topic: str
    support_level: SupportLevel
    reduction_level: ReductionLevel
