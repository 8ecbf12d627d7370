"""
Conversation Memory

Per-session bounded turn history plus lightweight topic tracking.

Sessions are created on first touch and removed on explicit end of
conversation or when idle longer than the configured TTL. Nothing here
raises for unknown sessions: reads return empty values, clears are no-ops.
"""

import logging
import re
from collections import Counter
from collections.abc import Callable, Collection, Mapping
from datetime import datetime, timedelta
from typing import Any

from archtutor.core.config import get_settings
from archtutor.core.logging import log_event
from archtutor.models.scaffolding import ReductionLevel, SupportLevel
from archtutor.models.session import LearningProgress, Session, SessionSummary, Turn, utcnow

logger = logging.getLogger(__name__)


STOP_WORDS = frozenset(
    """
    a about above after again all also am an and any are as at be because been
    before being between both but by can could did do does doing down during each
    few for from further had has have having he her here hers him his how i if in
    into is it its itself just let lets like me more most my no nor not now of off
    on once only or other our out over own same she should so some such than that
    the their them then there these they this those through to too under until up
    very was we were what when where which while who whom why will with would you
    your yours user bot tutor think know want tell explain understand please
    really thing things way ways something question questions answer okay yes
    """.split()
)

MAX_SUMMARY_TOPICS = 5
TERM_PATTERN = re.compile(r"[a-z][a-z0-9\-]{2,}")


def levenshtein_distance(a: str, b: str) -> int:
    """Computes Levenshtein distance for short tokens."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            curr.append(min(
                prev[j] + 1,
                curr[j - 1] + 1,
                prev[j - 1] + cost,
            ))
        prev = curr
    return prev[-1]


def _cluster_threshold(a: str, b: str) -> int:
    # Short tokens ("cpu"/"bus"/"cpi") sit within distance 2 of each other
    # without being variants, so they only merge on a single edit.
    return 2 if min(len(a), len(b)) >= 5 else 1


def extract_topics(texts: list[str], limit: int = MAX_SUMMARY_TOPICS) -> list[str]:
    """
    Rank salient terms over a set of texts.

    Terms are counted after stop-word removal, near-duplicates (edit distance
    up to 2, or 1 for short terms) are folded into the cluster of the heavier term, and one
    representative per cluster is returned ordered by aggregate weight.
    """
    counts = Counter(
        term
        for text in texts
        for term in TERM_PATTERN.findall(text.lower())
        if term not in STOP_WORDS
    )
    if not counts:
        return []

    clusters: list[list] = []  # [representative, weight]
    for term, weight in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        for cluster in clusters:
            representative = cluster[0]
            if levenshtein_distance(term, representative) <= _cluster_threshold(term, representative):
                cluster[1] += weight
                break
        else:
            clusters.append([term, weight])

    clusters.sort(key=lambda cluster: -cluster[1])
    return [representative for representative, _ in clusters[:limit]]


class ConversationMemory:
    """Session-keyed store of recent turns."""

    def __init__(self, max_turns: int | None = None, ttl_seconds: int | None = None):
        settings = get_settings()
        self.max_turns = max_turns or settings.memory_max_turns
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._sessions: dict[str, Session] = {}

    # ── Session lifecycle ────────────────────────────────────────────────────

    def _get_session(self, session_id: str, create: bool = False) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            if not create:
                return None
            session = Session(session_id=session_id, max_turns=self.max_turns)
            self._sessions[session_id] = session
            log_event(logger, "session_created", session_id=session_id)
            return session
        return self._repair(session)

    def _repair(self, session: Session) -> Session:
        """Reset inconsistent session state to safe defaults."""
        if session.total_turns < len(session.turns):
            log_event(
                logger, "session_state_invalid", logging.WARNING,
                session_id=session.session_id, field="total_turns",
            )
            session.total_turns = len(session.turns)
        if session.current_topic and session.current_topic not in session.topics_seen:
            log_event(
                logger, "session_state_invalid", logging.WARNING,
                session_id=session.session_id, field="current_topic",
            )
            session.topics_seen.add(session.current_topic)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def clear(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            log_event(logger, "conversation_cleared", session_id=session_id)

    def evict_expired(self, now: datetime | None = None, keep: Collection[str] = ()) -> list[str]:
        """Drop sessions idle for longer than the TTL, except those in ``keep``. Returns evicted ids."""
        if self.ttl_seconds <= 0:
            return []
        cutoff = (now or utcnow()) - timedelta(seconds=self.ttl_seconds)
        expired = [
            sid for sid, s in self._sessions.items()
            if s.last_active < cutoff and sid not in keep
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            log_event(logger, "sessions_evicted", count=len(expired))
        return expired

    # ── Turns ────────────────────────────────────────────────────────────────

    @staticmethod
    def _validate_metadata(session_id: str, metadata: Any) -> dict[str, Any]:
        if metadata is None:
            return {}
        if not isinstance(metadata, Mapping) or not all(isinstance(k, str) for k in metadata):
            log_event(
                logger, "turn_metadata_malformed", logging.WARNING,
                session_id=session_id, received=type(metadata).__name__,
            )
            return {}

        confidence = metadata.get("topic_confidence")
        if confidence is not None:
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) \
                    or not 0.0 <= confidence <= 1.0:
                log_event(
                    logger, "turn_metadata_malformed", logging.WARNING,
                    session_id=session_id, field="topic_confidence",
                )
                return {}

        topic = metadata.get("topic")
        if topic is not None and not isinstance(topic, str):
            log_event(
                logger, "turn_metadata_malformed", logging.WARNING,
                session_id=session_id, field="topic",
            )
            return {}

        return dict(metadata)

    def add_turn(
        self,
        session_id: str,
        query: str,
        response: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Turn:
        """Append a turn, evicting the oldest beyond the window."""
        clean = self._validate_metadata(session_id, metadata)
        session = self._get_session(session_id, create=True)

        topic = clean.get("topic")
        confidence = clean.get("topic_confidence")
        turn = Turn(
            query=query,
            response=response,
            topic=topic,
            topic_confidence=float(confidence) if confidence is not None else None,
            metadata=clean,
        )
        session.turns.append(turn)
        session.total_turns += 1
        session.last_active = turn.timestamp
        if topic:
            session.topics_seen.add(topic)
            session.current_topic = topic

        log_event(
            logger, "turn_added",
            session_id=session_id, window=len(session.turns), total=session.total_turns,
        )
        return turn

    def annotate_last_turn(self, session_id: str, feedback: Mapping[str, Any]) -> Turn | None:
        """Attach feedback to the most recent turn (the only allowed mutation)."""
        session = self._get_session(session_id)
        if session is None or not session.turns:
            return None
        annotated = session.turns[-1].model_copy(update={"feedback": dict(feedback)})
        session.turns[-1] = annotated
        return annotated

    def update_levels(
        self,
        session_id: str,
        support_level: SupportLevel,
        reduction_level: ReductionLevel,
    ) -> None:
        session = self._get_session(session_id, create=True)
        session.support_level = support_level
        session.reduction_level = reduction_level
        session.last_active = utcnow()

    # ── Reads ────────────────────────────────────────────────────────────────

    def get_context(self, session_id: str, window_size: int | None = None) -> list[Turn]:
        """Recent turns in original order, most recent last."""
        session = self._get_session(session_id)
        if session is None:
            return []
        turns = list(session.turns)
        if window_size is not None:
            turns = turns[-window_size:] if window_size > 0 else []
        return turns

    def turn_count(self, session_id: str) -> int:
        """Total turns in the session, including those evicted from the window."""
        session = self._get_session(session_id)
        return session.total_turns if session else 0

    def current_topic(self, session_id: str) -> str | None:
        session = self._get_session(session_id)
        return session.current_topic if session else None

    def levels(self, session_id: str) -> tuple[SupportLevel, ReductionLevel]:
        """Last stored scaffolding levels, or the defaults for a new session."""
        session = self._get_session(session_id)
        if session is None:
            return SupportLevel.HIGH, ReductionLevel.NONE
        return session.support_level, session.reduction_level

    def summarize(self, session_id: str) -> SessionSummary:
        session = self._get_session(session_id)
        if session is None:
            return SessionSummary(session_id=session_id, turn_count=0, topics=[])

        texts = [f"{turn.query} {turn.response}" for turn in session.turns]
        last = session.turns[-1].timestamp if session.turns else None
        return SessionSummary(
            session_id=session_id,
            turn_count=session.total_turns,
            topics=extract_topics(texts),
            last_interaction_time=last,
        )

    def learning_progress(self, session_id: str, window_size: int | None = None) -> LearningProgress:
        """
        Learner progress over the most recent turns.

        Each turn's concept is its subtopic, or its topic when it has none.
        Positive feedback on a turn marks the concept mastered and negative
        feedback marks it as needing work; the latest feedback on a concept
        wins. The level compares the two counts.
        """
        window = window_size if window_size is not None else get_settings().progress_window_turns
        mastered: list[str] = []
        needs_work: list[str] = []
        focus: list[str] = []

        for turn in self.get_context(session_id, window):
            concept = turn.metadata.get("subtopic") or turn.topic
            if not concept:
                continue
            concept = concept.replace("_", " ")
            if concept in focus:
                focus.remove(concept)
            focus.append(concept)

            if not turn.feedback or "is_positive" not in turn.feedback:
                continue
            gained, lost = (mastered, needs_work) if turn.feedback["is_positive"] else (needs_work, mastered)
            if concept in lost:
                lost.remove(concept)
            if concept not in gained:
                gained.append(concept)

        if len(mastered) > len(needs_work) * 2:
            level = "advanced"
        elif len(mastered) > len(needs_work):
            level = "intermediate"
        else:
            level = "beginner"

        return LearningProgress(
            mastered=mastered,
            needs_work=needs_work,
            current_level=level,
            recent_focus=focus,
        )

    def format_context(self, session_id: str, window_size: int | None = None) -> str:
        """Plain-text transcript used as context for query expansion."""
        return "\n\n".join(
            f"User: {turn.query}\nTutor: {turn.response}"
            for turn in self.get_context(session_id, window_size)
        )

    def format_history(
        self,
        session_id: str,
        max_tokens: int,
        count_tokens: Callable[[str], int],
    ) -> list[dict]:
        """
        Chat messages for the generation prompt.

        Walks backwards from the newest turn and stops at the first turn that
        would push the history past ``max_tokens``.
        """
        kept: list[Turn] = []
        used = 0
        for turn in reversed(self.get_context(session_id)):
            cost = count_tokens(turn.query) + count_tokens(turn.response)
            if used + cost > max_tokens:
                break
            used += cost
            kept.append(turn)

        messages: list[dict] = []
        for turn in reversed(kept):
            messages.append({"role": "user", "content": turn.query})
            messages.append({"role": "assistant", "content": turn.response})
        return messages
