"""
Shared fixtures: in-memory stand-ins for the vector index and the LLM so the
pipeline runs without network access.
"""

import asyncio
import random

import pytest

from archtutor.core.profiling import PerformanceMonitor
from archtutor.models.passage import RetrievedPassage
from archtutor.services.memory.conversation_memory import ConversationMemory
from archtutor.services.rag.multi_query import MultiQueryRetriever
from archtutor.services.scaffolding.feedback import FeedbackController
from archtutor.services.scaffolding.orchestrator import ScaffoldingOrchestrator


def word_count(text: str) -> int:
    return len(text.split())


def passage(content: str, score: float, **metadata) -> RetrievedPassage:
    return RetrievedPassage(content=content, score=score, metadata=metadata)


class FakeIndex:
    """Returns canned passages per query; queries listed in ``fail_on`` raise."""

    def __init__(self, results=None, default=None, fail_on=(), delay: float = 0.0):
        self.results = results or {}
        self.default = default if default is not None else []
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls: list[tuple[str, dict | None]] = []

    async def search(self, query, filter=None):
        self.calls.append((query, filter))
        if self.delay:
            await asyncio.sleep(self.delay)
        if query in self.fail_on:
            raise RuntimeError("index unavailable")
        return list(self.results.get(query, self.default))


class FakeLLM:
    """
    Scripted text generator.

    ``completions`` maps a stage name to the text (or exception) returned by
    ``complete``; ``chunks`` is what every ``stream`` call yields. ``models``
    records the model requested by every call.
    """

    def __init__(
        self,
        chunks=None,
        completions=None,
        stream_error=None,
        chunk_delay: float = 0.0,
        complete_delay: float = 0.0,
    ):
        self.chunks = chunks if chunks is not None else ["Let's ", "think ", "about it."]
        self.completions = completions or {}
        self.stream_error = stream_error
        self.chunk_delay = chunk_delay
        self.complete_delay = complete_delay
        self.complete_calls: list[str] = []
        self.stream_calls: list[list[dict]] = []
        self.models: list[str | None] = []

    async def complete(self, messages, max_tokens, temperature, stage="generation", model_id=None):
        self.complete_calls.append(stage)
        self.models.append(model_id)
        if self.complete_delay:
            await asyncio.sleep(self.complete_delay)
        value = self.completions.get(stage, "")
        if isinstance(value, Exception):
            raise value
        return value

    async def stream(self, messages, max_tokens, temperature, stage="generation", model_id=None):
        self.stream_calls.append(messages)
        self.models.append(model_id)
        if self.stream_error is not None:
            raise self.stream_error
        for chunk in self.chunks:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk


@pytest.fixture
def fake_index():
    return FakeIndex(
        default=[
            passage("A cache stores recently used data close to the CPU.", 0.9, concept="cache"),
            passage("Hit ratio is hits divided by total accesses.", 0.7, concept="hit ratio"),
        ]
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def make_tutor():
    """Build an orchestrator around the given fakes."""

    def _make(index=None, llm=None, timeout: float = 1.0, **kwargs):
        index = index if index is not None else FakeIndex()
        llm = llm if llm is not None else FakeLLM()
        retriever = MultiQueryRetriever(
            index=index,
            llm=llm,
            count_tokens=word_count,
            timeout=timeout,
        )
        return ScaffoldingOrchestrator(
            retriever=retriever,
            llm=llm,
            memory=kwargs.pop("memory", ConversationMemory(max_turns=5, ttl_seconds=3600)),
            feedback=kwargs.pop("feedback", FeedbackController(min_interactions=3)),
            monitor=kwargs.pop("monitor", PerformanceMonitor()),
            count_tokens=word_count,
            timeout=timeout,
            rng=random.Random(0),
            **kwargs,
        )

    return _make
