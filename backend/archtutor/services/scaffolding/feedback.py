"""
Feedback & Adaptive Support Controller

Keeps per-session positive/negative feedback counters and derives two
signals from them:
- support level: how much guidance structure the next response carries
- reduction level: how much retrieved content is trimmed before generation

Both signals are smoothed: between consecutive computations for one session
a level moves at most one step, so the learner never sees an abrupt change.
"""

import logging
from dataclasses import dataclass

from archtutor.core.config import get_settings
from archtutor.core.logging import log_event
from archtutor.models.feedback import FeedbackRecord
from archtutor.models.scaffolding import (
    REDUCTION_ORDER,
    SUPPORT_ORDER,
    ReductionLevel,
    SupportLevel,
)

logger = logging.getLogger(__name__)


# Topics whose structure needs extra scaffolding regardless of performance
COMPLEX_TOPICS = frozenset({"pipelining", "instruction_set"})

# Performance thresholds
STRUGGLING_RATIO = 0.3
PROFICIENT_RATIO = 0.7
EARLY_TURNS = 2
EXPERIENCED_TURNS = 5


def clamp(value: float, min_val: float = 0.0, max_val: float = 1.0) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def step_toward(levels: list, current, target):
    """Move one step from ``current`` toward ``target`` along ``levels``."""
    current_idx = levels.index(current)
    target_idx = levels.index(target)

    if target_idx > current_idx:
        return levels[current_idx + 1]
    elif target_idx < current_idx:
        return levels[current_idx - 1]

    return current


def shift_support(current: SupportLevel, direction: str) -> SupportLevel:
    """Shift support level: "more" toward high_support, "less" toward low_support."""
    current_idx = SUPPORT_ORDER.index(current)

    if direction == "more" and current_idx > 0:
        return SUPPORT_ORDER[current_idx - 1]
    elif direction == "less" and current_idx < len(SUPPORT_ORDER) - 1:
        return SUPPORT_ORDER[current_idx + 1]

    return current


@dataclass
class _SessionFeedback:
    record: FeedbackRecord
    last_support: SupportLevel | None = None
    last_reduction: ReductionLevel | None = None


class FeedbackController:
    """Session-keyed feedback counters and derived scaffolding levels."""

    def __init__(self, min_interactions: int | None = None):
        settings = get_settings()
        self.min_interactions = (
            min_interactions if min_interactions is not None else settings.feedback_min_interactions
        )
        self._sessions: dict[str, _SessionFeedback] = {}

    def _state(self, session_id: str) -> _SessionFeedback:
        state = self._sessions.get(session_id)
        if state is None:
            state = _SessionFeedback(record=FeedbackRecord())
            self._sessions[session_id] = state
        return state

    # ── Counters ─────────────────────────────────────────────────────────────

    def record_feedback(self, session_id: str, is_positive: bool) -> FeedbackRecord:
        record = self._state(session_id).record
        if is_positive:
            record.positive_count += 1
        else:
            record.negative_count += 1
        record.total_count += 1

        log_event(
            logger, "feedback_stored",
            session_id=session_id,
            positive=record.positive_count,
            negative=record.negative_count,
        )
        return record.model_copy()

    def get_feedback(self, session_id: str) -> FeedbackRecord:
        state = self._sessions.get(session_id)
        return state.record.model_copy() if state else FeedbackRecord()

    def performance_ratio(self, session_id: str) -> float:
        return clamp(self.get_feedback(session_id).ratio)

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    # ── Support level ────────────────────────────────────────────────────────

    def target_support_level(
        self,
        session_id: str,
        turn_count: int,
        topic: str | None = None,
    ) -> SupportLevel:
        """Unsmoothed support level for the current state."""
        ratio = self.performance_ratio(session_id)

        if turn_count <= EARLY_TURNS or ratio < STRUGGLING_RATIO:
            level = SupportLevel.HIGH
        elif turn_count > EXPERIENCED_TURNS and ratio > PROFICIENT_RATIO:
            level = SupportLevel.LOW
        else:
            level = SupportLevel.MEDIUM

        if topic in COMPLEX_TOPICS:
            level = shift_support(level, "more")

        return level

    def support_level(
        self,
        session_id: str,
        turn_count: int,
        topic: str | None = None,
    ) -> SupportLevel:
        state = self._state(session_id)
        target = self.target_support_level(session_id, turn_count, topic)

        if state.last_support is None:
            level = target
        else:
            level = step_toward(SUPPORT_ORDER, state.last_support, target)

        if level != state.last_support:
            log_event(
                logger, "support_level_updated",
                session_id=session_id,
                old=state.last_support.value if state.last_support else None,
                new=level.value,
                target=target.value,
            )
        state.last_support = level
        return level

    # ── Reduction level ──────────────────────────────────────────────────────

    def target_reduction_level(self, session_id: str) -> ReductionLevel:
        """Unsmoothed reduction level for the current feedback state."""
        record = self.get_feedback(session_id)
        if record.total_count < self.min_interactions:
            return ReductionLevel.NONE

        ratio = self.performance_ratio(session_id)
        if ratio >= 0.8:
            return ReductionLevel.HIGH
        elif ratio >= 0.6:
            return ReductionLevel.MEDIUM
        elif ratio >= 0.3:
            return ReductionLevel.LOW
        return ReductionLevel.NONE

    def reduction_level(self, session_id: str) -> ReductionLevel:
        state = self._state(session_id)
        target = self.target_reduction_level(session_id)

        if state.last_reduction is None:
            level = target
        else:
            level = step_toward(REDUCTION_ORDER, state.last_reduction, target)

        if level != state.last_reduction:
            log_event(
                logger, "reduction_level_updated",
                session_id=session_id,
                old=state.last_reduction.value if state.last_reduction else None,
                new=level.value,
                ratio=round(self.performance_ratio(session_id), 3),
            )
        state.last_reduction = level
        return level
