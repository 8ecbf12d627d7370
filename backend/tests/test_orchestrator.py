"""
Integration tests for the scaffolding orchestrator.

Runs the full pipeline from services/scaffolding/orchestrator.py against
in-memory fakes for the index and the LLM.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from archtutor.core.profiling import PerformanceMonitor
from archtutor.models.response import ChunkEvent, CompleteEvent, ErrorEvent, ResponseType
from archtutor.models.scaffolding import ReductionLevel, SupportLevel
from archtutor.models.session import utcnow
from archtutor.services.memory.conversation_memory import ConversationMemory
from archtutor.services.scaffolding.templates import FALLBACK_MESSAGE
from conftest import FakeIndex, FakeLLM


async def collect(tutor, session_id, query):
    return [event async for event in tutor.stream_query(session_id, query)]


class TestGuidance:
    """Test in-scope queries."""

    @pytest.mark.asyncio
    async def test_first_question_gets_high_support(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.type == ResponseType.GUIDANCE
        assert response.topic == "cache"
        assert response.support_level == SupportLevel.HIGH
        assert response.reduction_level == ReductionLevel.NONE
        assert response.message == "Let's think about it."
        assert response.concepts == ["cache", "hit ratio"]
        assert response.next_steps
        assert fake_index.calls

    @pytest.mark.asyncio
    async def test_stream_ends_with_one_terminal_event(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        events = await collect(tutor, "s1", "What is a cache?")

        assert all(isinstance(e, ChunkEvent) for e in events[:-1])
        assert isinstance(events[-1], CompleteEvent)
        assert "".join(e.text for e in events[:-1]) == events[-1].response.message

    @pytest.mark.asyncio
    async def test_turn_is_persisted_with_route_metadata(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        await tutor.process_query("s1", "What is a cache?")

        turns = tutor.memory.get_context("s1")
        assert len(turns) == 1
        assert turns[0].topic == "cache"
        assert turns[0].metadata["query_type"] == "concept_explanation"
        assert turns[0].metadata["support_level"] == "high_support"

    @pytest.mark.asyncio
    async def test_history_reaches_the_prompt(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        await tutor.process_query("s1", "What is a cache?")
        await tutor.process_query("s1", "What is a cache miss?")

        second_messages = fake_llm.stream_calls[1]
        assert second_messages[0]["role"] == "system"
        assert {"role": "assistant", "content": "Let's think about it."} in second_messages
        assert "What is a cache miss?" in second_messages[-1]["content"]

    @pytest.mark.asyncio
    async def test_experienced_learner_gets_less_help(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        for i in range(6):
            tutor.memory.add_turn("s1", f"question {i}", f"reply {i}")
        for _ in range(9):
            await tutor.process_feedback("s1", True)
        await tutor.process_feedback("s1", False)

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.support_level == SupportLevel.LOW
        assert response.reduction_level == ReductionLevel.HIGH
        assert response.concepts == ["cache"]

    @pytest.mark.asyncio
    async def test_guidance_suggests_neighbouring_topics(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.suggested_topics == ["Memory systems", "Parallel processing"]
        assert response.suggested_topics != response.related_concepts


class TestEarlyReturns:
    """Test routes that skip retrieval and generation."""

    @pytest.mark.asyncio
    async def test_off_domain_query_is_redirected(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        response = await tutor.process_query("s1", "What's your favorite pizza topping?")

        assert response.type == ResponseType.REDIRECT
        assert response.suggested_topics
        assert fake_index.calls == []
        assert fake_llm.stream_calls == []
        assert fake_llm.complete_calls == []
        assert tutor.memory.turn_count("s1") == 0

    @pytest.mark.asyncio
    async def test_vague_query_asks_for_clarification(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        response = await tutor.process_query("s1", "How does a computer work?")

        assert response.type == ResponseType.CLARIFICATION
        assert response.message.endswith("?")
        assert fake_index.calls == []
        assert fake_llm.stream_calls == []


class TestFailures:
    """The pipeline answers with the fallback instead of raising."""

    @pytest.mark.asyncio
    async def test_generation_error(self, make_tutor, fake_index):
        tutor = make_tutor(index=fake_index, llm=FakeLLM(stream_error=RuntimeError("boom")))

        events = await collect(tutor, "s1", "What is a cache?")

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].response.type == ResponseType.FALLBACK
        assert events[-1].response.message == FALLBACK_MESSAGE
        assert tutor.memory.turn_count("s1") == 0

    @pytest.mark.asyncio
    async def test_generation_timeout(self, make_tutor, fake_index):
        tutor = make_tutor(index=fake_index, llm=FakeLLM(chunk_delay=0.5), timeout=0.05)

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.type == ResponseType.FALLBACK

    @pytest.mark.asyncio
    async def test_empty_completion(self, make_tutor, fake_index):
        tutor = make_tutor(index=fake_index, llm=FakeLLM(chunks=[]))

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.type == ResponseType.FALLBACK

    @pytest.mark.asyncio
    async def test_failing_index_still_generates(self, make_tutor, fake_llm):
        index = FakeIndex(fail_on=["What is a cache?"])
        tutor = make_tutor(index=index, llm=fake_llm)

        response = await tutor.process_query("s1", "What is a cache?")

        assert response.type == ResponseType.GUIDANCE
        assert response.concepts == []


class TestCompoundQueries:
    """Test splitting multi-part questions."""

    @pytest.mark.asyncio
    async def test_compound_query_is_split(self, make_tutor, fake_index):
        parts = ["What is a cache?", "How does a TLB work?"]
        llm = FakeLLM(completions={"decomposition": json.dumps(parts)})
        tutor = make_tutor(index=fake_index, llm=llm)

        response = await tutor.process_query("s1", "What is a cache? How does a TLB work?")

        assert response.type == ResponseType.GUIDANCE
        assert len(llm.stream_calls) == 2
        assert "**Part 1: What is a cache?**" in response.message
        assert "**Part 2: How does a TLB work?**" in response.message
        assert tutor.memory.turn_count("s1") == 1

    @pytest.mark.asyncio
    async def test_bad_split_answers_as_one_question(self, make_tutor, fake_index):
        llm = FakeLLM(completions={"decomposition": "I cannot split this"})
        tutor = make_tutor(index=fake_index, llm=llm)

        response = await tutor.process_query("s1", "What is a cache? How does a TLB work?")

        assert response.type == ResponseType.GUIDANCE
        assert len(llm.stream_calls) == 1
        assert "Part 1" not in response.message


class TestSessions:
    """Test feedback, session end and concurrency."""

    @pytest.mark.asyncio
    async def test_feedback_annotates_last_turn(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_query("s1", "What is a cache?")

        record = await tutor.process_feedback("s1", True)

        assert record.positive_count == 1
        assert tutor.memory.get_context("s1")[-1].feedback["is_positive"] is True

    @pytest.mark.asyncio
    async def test_end_session_forgets_everything(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_query("s1", "What is a cache?")
        await tutor.process_feedback("s1", True)

        await tutor.end_session("s1")

        assert tutor.memory.get_context("s1") == []
        assert tutor.feedback.get_feedback("s1").total_count == 0
        assert tutor.summarize_session("s1").turn_count == 0

    @pytest.mark.asyncio
    async def test_summary(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_query("s1", "What is a cache?")

        summary = tutor.summarize_session("s1")

        assert summary.turn_count == 1
        assert "cache" in summary.topics

    @pytest.mark.asyncio
    async def test_concurrent_requests(self, make_tutor, fake_index):
        tutor = make_tutor(index=fake_index, llm=FakeLLM(chunk_delay=0.01))

        responses = await asyncio.gather(
            tutor.process_query("s1", "What is a cache?"),
            tutor.process_query("s1", "What is a cache miss?"),
            tutor.process_query("s2", "What is a pipeline hazard?"),
        )

        assert all(r.type == ResponseType.GUIDANCE for r in responses)
        assert [t.query for t in tutor.memory.get_context("s1")] == [
            "What is a cache?",
            "What is a cache miss?",
        ]
        assert tutor.memory.turn_count("s2") == 1


class TestSessionLifecycle:
    """Test idle expiry and lock handover for sessions."""

    @pytest.mark.asyncio
    async def test_idle_sessions_without_turns_are_forgotten(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        for i in range(50):
            await tutor.process_query(f"visitor-{i}", "What's your favorite pizza topping?")
        for i in range(30):
            await tutor.process_feedback(f"rater-{i}", True)
        assert len(tutor._slots) == 80

        later = utcnow() + timedelta(seconds=tutor.memory.ttl_seconds + 1)
        evicted = tutor.evict_expired(now=later)

        assert len(evicted) == 80
        assert tutor._slots == {}
        assert tutor.feedback._sessions == {}

    @pytest.mark.asyncio
    async def test_recently_seen_session_keeps_feedback(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_feedback("s1", True)

        assert tutor.evict_expired() == []
        assert tutor.feedback.get_feedback("s1").positive_count == 1

    @pytest.mark.asyncio
    async def test_session_with_request_in_flight_is_kept(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(
            index=fake_index, llm=fake_llm, memory=ConversationMemory(max_turns=5, ttl_seconds=60)
        )
        stream = tutor.stream_query("busy", "What is a cache?")
        first = await stream.__anext__()
        assert isinstance(first, ChunkEvent)

        later = utcnow() + timedelta(seconds=120)
        assert tutor.evict_expired(now=later) == []
        assert "busy" in tutor._slots
        assert tutor.memory.has_session("busy")

        await stream.aclose()
        assert tutor.evict_expired(now=later) == ["busy"]
        assert "busy" not in tutor._slots

    @pytest.mark.asyncio
    async def test_end_session_hands_lock_to_waiting_request(self, make_tutor, fake_index):
        tutor = make_tutor(index=fake_index, llm=FakeLLM(chunk_delay=0.02))

        running = asyncio.create_task(tutor.process_query("s1", "What is a cache?"))
        await asyncio.sleep(0.01)
        slot = tutor._slots["s1"]
        ending = asyncio.create_task(tutor.end_session("s1"))
        queued = asyncio.create_task(tutor.process_query("s1", "What is a cache miss?"))
        await ending

        assert tutor._slots["s1"] is slot
        late = asyncio.create_task(tutor.process_query("s1", "What is a write-back cache?"))
        await asyncio.gather(running, queued, late)

        assert [t.query for t in tutor.memory.get_context("s1")] == [
            "What is a cache miss?",
            "What is a write-back cache?",
        ]

    @pytest.mark.asyncio
    async def test_idle_end_session_drops_slot(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_query("s1", "What is a cache?")

        await tutor.end_session("s1")

        assert "s1" not in tutor._slots


class TestModelSelection:
    """The requested model reaches every LLM call of the query."""

    @pytest.mark.asyncio
    async def test_model_is_used_for_decomposition_and_generation(self, make_tutor, fake_index):
        parts = ["What is a cache?", "How does a TLB work?"]
        llm = FakeLLM(completions={"decomposition": json.dumps(parts)})
        tutor = make_tutor(index=fake_index, llm=llm)

        response = await tutor.process_query(
            "s1", "What is a cache? How does a TLB work?", model_id="gpt-4o"
        )

        assert response.type == ResponseType.GUIDANCE
        assert llm.models.count("gpt-4o") == 3
        assert tutor.memory.get_context("s1")[-1].metadata["model_id"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_default_model_when_none_is_requested(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        await tutor.process_query("s1", "What is a cache?")

        assert set(fake_llm.models) == {None}
        assert "model_id" not in tutor.memory.get_context("s1")[-1].metadata


class TestStageTiming:
    """Test per-stage timings recorded for each query."""

    @pytest.mark.asyncio
    async def test_guided_query_times_every_stage(self, make_tutor, fake_index, fake_llm):
        monitor = PerformanceMonitor()
        tutor = make_tutor(index=fake_index, llm=fake_llm, monitor=monitor)

        await tutor.process_query("s1", "What is a cache?")

        assert monitor.stats("router", "classify")["count"] == 1
        assert monitor.stats("rag", "retrieval")["count"] == 1
        assert monitor.stats("scaffold", "generation")["count"] == 1
        assert monitor.stats("scaffold", "query")["count"] == 1

    @pytest.mark.asyncio
    async def test_redirect_skips_retrieval_timing(self, make_tutor, fake_index, fake_llm):
        monitor = PerformanceMonitor()
        tutor = make_tutor(index=fake_index, llm=fake_llm, monitor=monitor)

        await tutor.process_query("s1", "What's your favorite pizza topping?")

        assert monitor.stats("router", "classify")["count"] == 1
        assert monitor.stats("rag", "retrieval") == {"count": 0}
        assert monitor.stats("scaffold", "query")["count"] == 1

    @pytest.mark.asyncio
    async def test_slow_generation_is_flagged(self, make_tutor, fake_index):
        monitor = PerformanceMonitor(thresholds={"generation": 0})
        tutor = make_tutor(index=fake_index, llm=FakeLLM(chunk_delay=0.01), monitor=monitor)

        await tutor.process_query("s1", "What is a cache?")

        assert monitor.stats("scaffold", "generation")["slow"] == 1
        assert monitor.stats("rag", "retrieval")["slow"] == 0


class TestLearnerProgress:
    """Test progress context in the generation prompt."""

    @pytest.mark.asyncio
    async def test_first_turn_has_no_progress_block(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)

        await tutor.process_query("s1", "What is a cache?")

        assert "Learner Progress" not in fake_llm.stream_calls[0][0]["content"]

    @pytest.mark.asyncio
    async def test_positive_feedback_shows_as_understood(self, make_tutor, fake_index, fake_llm):
        tutor = make_tutor(index=fake_index, llm=fake_llm)
        await tutor.process_query("s1", "What is a cache?")
        await tutor.process_feedback("s1", True)

        await tutor.process_query("s1", "What is a cache miss?")

        system_prompt = fake_llm.stream_calls[1][0]["content"]
        assert "Learner Progress" in system_prompt
        assert "Understood: cache" in system_prompt
        assert "Current level: advanced" in system_prompt
