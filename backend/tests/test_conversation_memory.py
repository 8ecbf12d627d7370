"""
Unit tests for conversation memory.

Tests the ConversationMemory store from services/memory/conversation_memory.py
"""

from datetime import timedelta

from archtutor.models.scaffolding import ReductionLevel, SupportLevel
from archtutor.models.session import utcnow
from archtutor.services.memory.conversation_memory import (
    ConversationMemory,
    extract_topics,
    levenshtein_distance,
)
from conftest import word_count


class TestWindow:
    """Test bounded turn history."""

    def test_keeps_last_n_turns_in_order(self):
        memory = ConversationMemory(max_turns=3)
        for i in range(5):
            memory.add_turn("s1", f"q{i}", f"r{i}")

        turns = memory.get_context("s1")
        assert [t.query for t in turns] == ["q2", "q3", "q4"]
        assert memory.turn_count("s1") == 5

    def test_window_size_limits_context(self):
        memory = ConversationMemory(max_turns=5)
        for i in range(4):
            memory.add_turn("s1", f"q{i}", f"r{i}")

        assert [t.query for t in memory.get_context("s1", window_size=2)] == ["q2", "q3"]
        assert memory.get_context("s1", window_size=0) == []

    def test_unknown_session_is_empty(self):
        memory = ConversationMemory()
        assert memory.get_context("missing") == []
        assert memory.turn_count("missing") == 0
        assert memory.current_topic("missing") is None
        assert memory.levels("missing") == (SupportLevel.HIGH, ReductionLevel.NONE)


class TestMetadata:
    """Test turn metadata handling."""

    def test_topic_metadata_updates_session(self):
        memory = ConversationMemory()
        turn = memory.add_turn("s1", "q", "r", {"topic": "cache", "topic_confidence": 0.8})

        assert turn.topic == "cache"
        assert turn.topic_confidence == 0.8
        assert memory.current_topic("s1") == "cache"

    def test_non_mapping_metadata_is_replaced(self):
        memory = ConversationMemory()
        turn = memory.add_turn("s1", "q", "r", ["not", "a", "dict"])
        assert turn.metadata == {}
        assert turn.topic is None

    def test_non_string_keys_are_rejected(self):
        memory = ConversationMemory()
        turn = memory.add_turn("s1", "q", "r", {1: "cache"})
        assert turn.metadata == {}

    def test_out_of_range_confidence_is_rejected(self):
        memory = ConversationMemory()
        turn = memory.add_turn("s1", "q", "r", {"topic": "cache", "topic_confidence": 1.5})
        assert turn.metadata == {}
        assert memory.current_topic("s1") is None


class TestLifecycle:
    """Test clearing, annotation and expiry."""

    def test_clear_is_idempotent(self):
        memory = ConversationMemory()
        memory.add_turn("s1", "q", "r")
        memory.clear("s1")
        memory.clear("s1")
        assert memory.get_context("s1") == []
        assert not memory.has_session("s1")

    def test_annotate_last_turn(self):
        memory = ConversationMemory()
        memory.add_turn("s1", "q1", "r1")
        memory.add_turn("s1", "q2", "r2")

        annotated = memory.annotate_last_turn("s1", {"is_positive": True})

        assert annotated.feedback == {"is_positive": True}
        turns = memory.get_context("s1")
        assert turns[0].feedback is None
        assert turns[1].feedback == {"is_positive": True}

    def test_annotate_without_turns_returns_none(self):
        memory = ConversationMemory()
        assert memory.annotate_last_turn("s1", {"is_positive": False}) is None

    def test_update_levels(self):
        memory = ConversationMemory()
        memory.update_levels("s1", SupportLevel.MEDIUM, ReductionLevel.LOW)
        assert memory.levels("s1") == (SupportLevel.MEDIUM, ReductionLevel.LOW)

    def test_evict_expired(self):
        memory = ConversationMemory(ttl_seconds=60)
        memory.add_turn("old", "q", "r")

        evicted = memory.evict_expired(now=utcnow() + timedelta(seconds=120))

        assert evicted == ["old"]
        assert not memory.has_session("old")

    def test_evict_expired_spares_kept_sessions(self):
        memory = ConversationMemory(ttl_seconds=60)
        memory.add_turn("old", "q", "r")
        memory.add_turn("busy", "q", "r")

        evicted = memory.evict_expired(now=utcnow() + timedelta(seconds=120), keep={"busy"})

        assert evicted == ["old"]
        assert memory.has_session("busy")

    def test_repairs_inconsistent_state(self):
        memory = ConversationMemory()
        memory.add_turn("s1", "q", "r")
        session = memory._sessions["s1"]
        session.total_turns = -1
        session.current_topic = "cache"

        assert memory.turn_count("s1") == 1
        assert "cache" in session.topics_seen


class TestFormatting:
    """Test prompt-facing formatting."""

    def test_format_context(self):
        memory = ConversationMemory()
        memory.add_turn("s1", "What is a cache?", "What do you already know?")
        assert memory.format_context("s1") == "User: What is a cache?\nTutor: What do you already know?"

    def test_format_history_keeps_newest_under_budget(self):
        memory = ConversationMemory()
        for i in range(4):
            memory.add_turn("s1", f"question {i}", f"reply number {i}")  # 5 words per turn

        messages = memory.format_history("s1", max_tokens=10, count_tokens=word_count)

        assert messages == [
            {"role": "user", "content": "question 2"},
            {"role": "assistant", "content": "reply number 2"},
            {"role": "user", "content": "question 3"},
            {"role": "assistant", "content": "reply number 3"},
        ]


class TestSummarize:
    """Test session summaries."""

    def test_levenshtein(self):
        assert levenshtein_distance("cache", "caches") == 1
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3

    def test_near_duplicates_cluster(self):
        topics = extract_topics([
            "cache cache cache pipeline",
            "caches pipeline",
        ])
        assert topics[0] == "cache"
        assert "caches" not in topics
        assert "pipeline" in topics

    def test_summary_is_capped(self):
        memory = ConversationMemory()
        memory.add_turn(
            "s1",
            "registers cache pipeline hazard memory bus interrupt",
            "alu datapath opcode",
        )
        summary = memory.summarize("s1")

        assert summary.turn_count == 1
        assert len(summary.topics) == 5
        assert summary.last_interaction_time is not None

    def test_summary_of_unknown_session(self):
        summary = ConversationMemory().summarize("missing")
        assert summary.turn_count == 0
        assert summary.topics == []


class TestLearningProgress:
    """Test progress derived from recent turns and their feedback."""

    @staticmethod
    def _turn(memory, topic, subtopic=None, is_positive=None):
        memory.add_turn("s1", "q", "r", {"topic": topic, "subtopic": subtopic})
        if is_positive is not None:
            memory.annotate_last_turn("s1", {"is_positive": is_positive})

    def test_new_session_is_beginner(self):
        progress = ConversationMemory().learning_progress("s1")

        assert progress.current_level == "beginner"
        assert progress.mastered == []
        assert progress.recent_focus == []

    def test_feedback_sorts_concepts(self):
        memory = ConversationMemory()
        self._turn(memory, "cache", "write_policy", is_positive=True)
        self._turn(memory, "pipelining", "hazards", is_positive=False)
        self._turn(memory, "memory")

        progress = memory.learning_progress("s1")

        assert progress.mastered == ["write policy"]
        assert progress.needs_work == ["hazards"]
        assert progress.recent_focus == ["write policy", "hazards", "memory"]
        assert progress.current_level == "beginner"

    def test_latest_feedback_on_a_concept_wins(self):
        memory = ConversationMemory()
        self._turn(memory, "cache", is_positive=False)
        self._turn(memory, "cpu", is_positive=True)
        self._turn(memory, "cache", is_positive=True)

        progress = memory.learning_progress("s1")

        assert progress.mastered == ["cpu", "cache"]
        assert progress.needs_work == []
        assert progress.recent_focus == ["cpu", "cache"]
        assert progress.current_level == "advanced"

    def test_only_recent_turns_count(self):
        memory = ConversationMemory()
        self._turn(memory, "cache", is_positive=True)
        self._turn(memory, "cpu", is_positive=False)

        progress = memory.learning_progress("s1", window_size=1)

        assert progress.mastered == []
        assert progress.needs_work == ["cpu"]
