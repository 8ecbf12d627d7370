"""
Scaffolding Orchestrator

Runs one learner query through the tutoring pipeline:

    classify ─┬─ out of scope ──────► redirect
              ├─ needs clarification ► clarification prompt
              └─ in scope ─► support/reduction levels ─► retrieve ─► reduce
                             ─► generate (streamed) ─► persist turn ─► respond

Retrieval and generation failures never escape: the caller receives the fixed
fallback reply instead. Requests for one session run one at a time; requests
for different sessions never wait on each other.
"""

import asyncio
import logging
import random
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

from archtutor.core.config import get_settings
from archtutor.core.errors import ServiceTimeoutError, UpstreamServiceError
from archtutor.core.logging import log_event
from archtutor.core.profiling import PerformanceMonitor, get_monitor
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
from archtutor.models.route import InScope, NeedsClarification, OutOfScope
from archtutor.models.scaffolding import ReductionLevel, ScaffoldingContext, SupportLevel
from archtutor.models.session import SessionSummary, utcnow
from archtutor.services.llm.client import TextGenerator, parse_string_list
from archtutor.services.memory.conversation_memory import ConversationMemory
from archtutor.services.rag.multi_query import MultiQueryRetriever
from archtutor.services.rag.tokens import get_token_counter
from archtutor.services.router.classifier import QueryRouter
from archtutor.services.scaffolding.feedback import FeedbackController
from archtutor.services.scaffolding.prompts import compile_policy, compile_user_prompt
from archtutor.services.scaffolding.reduction import reduce_content
from archtutor.services.scaffolding.templates import (
    FALLBACK_MESSAGE,
    clarification_message,
    next_steps,
    redirect_message,
    suggested_topics,
)

logger = logging.getLogger(__name__)

MAX_SUB_QUESTIONS = 3

DECOMPOSE_SYSTEM_PROMPT = (
    "Split the student's message into 2 or 3 self-contained computer architecture "
    "questions. Respond with a JSON array of strings only."
)


def passage_concepts(passages: list[RetrievedPassage]) -> list[str]:
    """Concept tags from passage metadata, first occurrence order."""
    concepts: list[str] = []
    for passage in passages:
        raw = passage.metadata.get("concept") or passage.metadata.get("concepts") or []
        if isinstance(raw, str):
            raw = raw.split(",")
        for concept in raw:
            concept = str(concept).strip()
            if concept and concept not in concepts:
                concepts.append(concept)
    return concepts


@dataclass
class _SessionSlot:
    """Per-session request lock, its in-flight count and last activity."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0
    last_seen: datetime = field(default_factory=utcnow)


class ScaffoldingOrchestrator:
    """Top-level tutoring pipeline for all sessions."""

    def __init__(
        self,
        retriever: MultiQueryRetriever,
        llm: TextGenerator,
        router: QueryRouter | None = None,
        memory: ConversationMemory | None = None,
        feedback: FeedbackController | None = None,
        count_tokens: Callable[[str], int] | None = None,
        timeout: float | None = None,
        rng: random.Random | None = None,
        monitor: PerformanceMonitor | None = None,
    ):
        settings = get_settings()
        self.retriever = retriever
        self.llm = llm
        self.router = router or QueryRouter()
        self.memory = memory or ConversationMemory()
        self.feedback = feedback or FeedbackController()
        self.count_tokens = count_tokens or get_token_counter()
        self.timeout = timeout or settings.service_timeout_seconds
        self.rng = rng or random.Random()
        self.monitor = monitor or get_monitor()

        self.generation_max_tokens = settings.generation_max_tokens
        self.generation_temperature = settings.generation_temperature
        self.history_max_tokens = settings.history_max_tokens
        self.compound_min_words = settings.compound_query_min_words

        self._slots: dict[str, _SessionSlot] = {}

    # ── Session bookkeeping ──────────────────────────────────────────────────

    @asynccontextmanager
    async def _session(self, session_id: str):
        """Hold the session's lock; a slot with users is never evicted or dropped."""
        slot = self._slots.get(session_id)
        if slot is None:
            slot = _SessionSlot()
            self._slots[session_id] = slot
        slot.users += 1
        try:
            async with slot.lock:
                slot.last_seen = utcnow()
                yield slot
        finally:
            slot.users -= 1
            slot.last_seen = utcnow()

    def evict_expired(self, now: datetime | None = None) -> list[str]:
        """
        Forget every session idle longer than the memory TTL.

        Covers sessions that never stored a turn (redirects, clarifications,
        fallbacks, feedback only) as well as those the memory holds. Sessions
        with a request in flight, or one seen within the TTL, are kept.
        """
        ttl = self.memory.ttl_seconds
        if ttl <= 0:
            return []
        now = now or utcnow()
        cutoff = now - timedelta(seconds=ttl)

        active = {
            session_id for session_id, slot in self._slots.items()
            if slot.users > 0 or slot.last_seen >= cutoff
        }
        evicted = set(self.memory.evict_expired(now, keep=active))
        for session_id in list(self._slots):
            if session_id not in active:
                del self._slots[session_id]
                self.memory.clear(session_id)
                evicted.add(session_id)

        for session_id in evicted:
            self.feedback.clear(session_id)
        if evicted:
            log_event(logger, "sessions_expired", count=len(evicted))
        return sorted(evicted)

    # ── Responses that skip generation ───────────────────────────────────────

    def _redirect(self, session_id: str, route: OutOfScope) -> TutorResponse:
        support, reduction = self.memory.levels(session_id)
        return TutorResponse(
            message=redirect_message(route.suggested_topics),
            type=ResponseType.REDIRECT,
            support_level=support,
            reduction_level=reduction,
            suggested_topics=route.suggested_topics,
        )

    def _clarify(self, session_id: str, route: NeedsClarification) -> TutorResponse:
        support, reduction = self.memory.levels(session_id)
        return TutorResponse(
            message=clarification_message(route.topic, self.rng),
            type=ResponseType.CLARIFICATION,
            topic=route.topic,
            support_level=support,
            reduction_level=reduction,
            suggested_topics=suggested_topics(route.topic),
        )

    def fallback_response(
        self,
        support: SupportLevel = SupportLevel.HIGH,
        reduction: ReductionLevel = ReductionLevel.NONE,
        topic: str | None = None,
    ) -> TutorResponse:
        return TutorResponse(
            message=FALLBACK_MESSAGE,
            type=ResponseType.FALLBACK,
            topic=topic,
            support_level=support,
            reduction_level=reduction,
        )

    # ── Pipeline stages ──────────────────────────────────────────────────────

    def is_compound(self, query: str) -> bool:
        return query.count("?") >= 2 or len(query.split()) >= self.compound_min_words

    async def decompose(self, session_id: str, query: str, model_id: str | None = None) -> list[str]:
        """Split a compound query into sub-questions; on any failure keep it whole."""
        if not self.is_compound(query):
            return [query]

        try:
            content = await asyncio.wait_for(
                self.llm.complete(
                    [
                        {"role": "system", "content": DECOMPOSE_SYSTEM_PROMPT},
                        {"role": "user", "content": query},
                    ],
                    max_tokens=200,
                    temperature=0.0,
                    stage="decomposition",
                    model_id=model_id,
                ),
                timeout=self.timeout,
            )
            parts = parse_string_list(content)
        except Exception as e:
            log_event(
                logger, "decomposition_failed", logging.WARNING,
                session_id=session_id, error=type(e).__name__,
            )
            return [query]

        if len(parts) < 2:
            return [query]
        return parts[:MAX_SUB_QUESTIONS]

    def _build_messages(
        self,
        session_id: str,
        question: str,
        reference: list[str],
        context: ScaffoldingContext,
        route: InScope,
    ) -> list[dict]:
        history = self.memory.format_history(session_id, self.history_max_tokens, self.count_tokens)
        progress = self.memory.learning_progress(session_id)
        return [
            {"role": "system", "content": compile_policy(context, route, progress)},
            *history,
            {"role": "user", "content": compile_user_prompt(question, reference, context)},
        ]

    async def _generate(self, messages: list[dict], model_id: str | None = None) -> AsyncIterator[str]:
        """Stream deltas, bounding the wait for each one."""
        deltas = self.llm.stream(
            messages,
            max_tokens=self.generation_max_tokens,
            temperature=self.generation_temperature,
            stage="generation",
            model_id=model_id,
        )
        try:
            while True:
                try:
                    delta = await asyncio.wait_for(deltas.__anext__(), timeout=self.timeout)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    raise ServiceTimeoutError("generation", self.timeout) from e
                if delta:
                    yield delta
        finally:
            aclose = getattr(deltas, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _guide(
        self,
        session_id: str,
        query: str,
        route: InScope,
        model_id: str | None = None,
    ) -> AsyncIterator[TutorEvent]:
        stage = "levels"
        support = self.memory.levels(session_id)[0]
        reduction = ReductionLevel.NONE
        try:
            turn_count = self.memory.turn_count(session_id)
            support = self.feedback.support_level(session_id, turn_count, route.topic)
            reduction = self.feedback.reduction_level(session_id)
            self.memory.update_levels(session_id, support, reduction)
            context = ScaffoldingContext(topic=route.topic, support_level=support, reduction_level=reduction)

            stage = "decomposition"
            questions = await self.decompose(session_id, query, model_id)
            conversation = self.memory.format_context(session_id)

            parts: list[str] = []
            concepts: list[str] = []
            for number, question in enumerate(questions, start=1):
                stage = "retrieval"
                with self.monitor.timed("rag", "retrieval", session_id=session_id):
                    passages = await self.retriever.retrieve(question, route, conversation)
                passages = reduce_content(passages, reduction)
                for concept in passage_concepts(passages):
                    if concept not in concepts:
                        concepts.append(concept)

                stage = "generation"
                messages = self._build_messages(
                    session_id, question, [p.content for p in passages], context, route
                )
                text = ""
                if len(questions) > 1:
                    text = f"**Part {number}: {question}**\n\n"
                    yield ChunkEvent(text=text)
                with self.monitor.timed("scaffold", "generation", session_id=session_id):
                    async for delta in self._generate(messages, model_id):
                        text += delta
                        yield ChunkEvent(text=delta)
                parts.append(text.strip())

            message = "\n\n".join(part for part in parts if part)
            if not message.strip():
                raise UpstreamServiceError("generation", "Empty completion")

            stage = "persist"
            metadata = {
                "topic": route.topic,
                "topic_confidence": route.confidence,
                "query_type": route.query_type.value,
                "subtopic": route.subtopic,
                "support_level": support.value,
                "reduction_level": reduction.value,
                "sub_questions": len(questions),
            }
            if model_id:
                metadata["model_id"] = model_id
            self.memory.add_turn(session_id, query, message, metadata)
        except Exception as e:
            log_event(
                logger, "pipeline_failed", logging.ERROR,
                session_id=session_id,
                stage=getattr(e, "stage", stage),
                error=getattr(e, "message", None) or f"{type(e).__name__}: {e}",
                query_length=len(query),
            )
            fallback = self.fallback_response(support, reduction, route.topic)
            yield ErrorEvent(message=FALLBACK_MESSAGE, response=fallback)
            return

        yield CompleteEvent(
            response=TutorResponse(
                message=message,
                type=ResponseType.GUIDANCE,
                topic=route.topic,
                query_type=route.query_type,
                support_level=support,
                reduction_level=reduction,
                related_concepts=route.related_concepts,
                suggested_topics=suggested_topics(route.topic),
                next_steps=next_steps(route.query_type, route.topic, support),
                concepts=concepts,
            )
        )

    # ── Public API ───────────────────────────────────────────────────────────

    async def stream_query(
        self,
        session_id: str,
        query: str,
        model_id: str | None = None,
    ) -> AsyncIterator[TutorEvent]:
        """
        Process one query and yield its events.

        Zero or more ChunkEvents are followed by exactly one CompleteEvent or
        ErrorEvent. ``model_id`` picks a registered model for every LLM call
        of this query; None uses the configured default.
        """
        async with self._session(session_id):
            self.evict_expired()
            started = time.perf_counter()

            try:
                with self.monitor.timed("router", "classify"):
                    route = self.router.classify(query)
            except Exception as e:
                log_event(
                    logger, "pipeline_failed", logging.ERROR,
                    session_id=session_id, stage="classify",
                    error=f"{type(e).__name__}: {e}", query_length=len(query or ""),
                )
                yield ErrorEvent(message=FALLBACK_MESSAGE, response=self.fallback_response())
                return

            terminal: TutorEvent
            if isinstance(route, OutOfScope):
                terminal = CompleteEvent(response=self._redirect(session_id, route))
                yield terminal
            elif isinstance(route, NeedsClarification):
                terminal = CompleteEvent(response=self._clarify(session_id, route))
                yield terminal
            else:
                async for event in self._guide(session_id, query, route, model_id):
                    terminal = event
                    yield event

            elapsed_ms = (time.perf_counter() - started) * 1000
            self.monitor.record("scaffold", "query", elapsed_ms, route=route.kind)
            log_event(
                logger, "query_processed",
                session_id=session_id,
                route=route.kind,
                type=terminal.response.type.value,
                elapsed_ms=round(elapsed_ms),
            )

    async def process_query(
        self,
        session_id: str,
        query: str,
        model_id: str | None = None,
    ) -> TutorResponse:
        """Run the pipeline to completion and return the final response."""
        response = None
        async for event in self.stream_query(session_id, query, model_id):
            if isinstance(event, (CompleteEvent, ErrorEvent)):
                response = event.response
        return response or self.fallback_response()

    async def process_feedback(self, session_id: str, is_positive: bool) -> FeedbackRecord:
        async with self._session(session_id):
            record = self.feedback.record_feedback(session_id, is_positive)
            self.memory.annotate_last_turn(
                session_id,
                {"is_positive": is_positive, "recorded_at": utcnow().isoformat()},
            )
            return record

    async def end_session(self, session_id: str) -> None:
        async with self._session(session_id) as slot:
            self.memory.clear(session_id)
            self.feedback.clear(session_id)
        # A request queued behind this one keeps the same lock
        if slot.users == 0 and self._slots.get(session_id) is slot:
            del self._slots[session_id]
        log_event(logger, "session_ended", session_id=session_id)

    def summarize_session(self, session_id: str) -> SessionSummary:
        return self.memory.summarize(session_id)


# ── Singleton ─────────────────────────────────────────────────────────────────

_tutor: ScaffoldingOrchestrator | None = None


def get_tutor() -> ScaffoldingOrchestrator:
    """Get or create the tutoring pipeline wired to ChromaDB and OpenAI."""
    global _tutor
    if _tutor is None:
        from archtutor.services.llm.client import get_llm_client
        from archtutor.services.rag.retriever import ChromaRetrievalIndex

        llm = get_llm_client()
        retriever = MultiQueryRetriever(index=ChromaRetrievalIndex(), llm=llm)
        _tutor = ScaffoldingOrchestrator(retriever=retriever, llm=llm)
    return _tutor
