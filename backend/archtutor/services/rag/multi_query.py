"""
Multi-Query Retrieval Fusion

One learner question is searched from several angles:
1. the question itself
2. the topic's phrasing templates with the question substituted
3. up to three alternatives written by the LLM from the question, topic and
   recent conversation

Every phrasing is searched concurrently against the index with the same
topic filter. The result lists are merged (exact-content duplicates collapse
to one passage), sorted by score and cut to a token budget so the reference
material always fits the generation prompt.

A phrasing whose search fails contributes nothing; the others still count.
If the LLM cannot write alternatives, the template phrasings are used alone.
"""

import asyncio
import logging
import re
from typing import Callable

from archtutor.core.config import get_settings
from archtutor.core.logging import log_event
from archtutor.models.passage import RetrievedPassage
from archtutor.models.route import InScope
from archtutor.services.llm.client import TextGenerator
from archtutor.services.rag.retriever import RetrievalIndex
from archtutor.services.rag.templates import GENERAL_TOPIC, templates_for
from archtutor.services.rag.tokens import get_token_counter
from archtutor.services.router.vocabulary import TOPIC_NAMES, TOPICS

logger = logging.getLogger(__name__)

MAX_GENERATED_VARIATIONS = 3

VARIATION_SYSTEM_PROMPT = "You are a helpful assistant that generates search query variations."

TOPIC_TAG_SYSTEM_PROMPT = (
    "You label computer architecture questions with exactly one topic key. "
    "Reply with the key only."
)

LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def _variation_prompt(query: str, topic: str, conversation_context: str) -> str:
    context = conversation_context.strip() or "(no earlier conversation)"
    topic_name = TOPIC_NAMES.get(topic, "computer architecture")
    return (
        f'Given the original query "{query}" and the conversation context:\n'
        f"{context}\n\n"
        f"Generate {MAX_GENERATED_VARIATIONS} variations of the query that are relevant to "
        f'the topic "{topic_name}" in computer architecture.\n'
        "Write one variation per line with no numbering and no extra text."
    )


def _topic_tag_prompt(query: str) -> str:
    keys = ", ".join(TOPICS.keys())
    return f"Topic keys: {keys}\n\nQuestion: {query}\n\nWhich topic key fits best?"


def parse_variation_lines(content: str) -> list[str]:
    variations = []
    for line in content.splitlines():
        line = LIST_MARKER.sub("", line).strip().strip('"').strip()
        if line:
            variations.append(line)
    return variations[:MAX_GENERATED_VARIATIONS]


def dedupe_preserving_order(items: list[str]) -> list[str]:
    seen = set()
    unique = []
    for item in items:
        key = " ".join(item.lower().split())
        if key and key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def merge_results(result_lists: list[list[RetrievedPassage]]) -> list[RetrievedPassage]:
    """
    Merge per-phrasing results into one ranked list.

    Passages with identical content collapse into one entry that keeps the
    higher score and the position of its first fetch. The list is sorted by
    score, highest first, with fetch order breaking ties.
    """
    merged: dict[str, tuple[int, RetrievedPassage]] = {}
    position = 0
    for results in result_lists:
        for passage in results:
            existing = merged.get(passage.content)
            if existing is None:
                merged[passage.content] = (position, passage)
            elif passage.score > existing[1].score:
                merged[passage.content] = (existing[0], passage)
            position += 1

    ranked = sorted(merged.values(), key=lambda entry: (-entry[1].score, entry[0]))
    return [passage for _, passage in ranked]


def truncate_to_budget(
    passages: list[RetrievedPassage],
    max_tokens: int,
    count_tokens: Callable[[str], int],
) -> tuple[list[RetrievedPassage], int]:
    """Keep leading passages while they fit; stop at the first that does not."""
    kept = []
    used = 0
    for passage in passages:
        tokens = count_tokens(passage.content)
        if used + tokens > max_tokens:
            break
        kept.append(passage)
        used += tokens
    return kept, used


class MultiQueryRetriever:
    """Query expansion plus fused, budgeted retrieval."""

    def __init__(
        self,
        index: RetrievalIndex,
        llm: TextGenerator | None = None,
        count_tokens: Callable[[str], int] | None = None,
        max_variations: int | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        variation_temperature: float | None = None,
    ):
        settings = get_settings()
        self.index = index
        self.llm = llm
        self.count_tokens = count_tokens or get_token_counter()
        self.max_variations = max_variations or settings.max_query_variations
        self.max_tokens = max_tokens or settings.retrieval_max_tokens
        self.timeout = timeout or settings.service_timeout_seconds
        self.variation_temperature = (
            variation_temperature
            if variation_temperature is not None
            else settings.variation_temperature
        )

    # ── Topic ────────────────────────────────────────────────────────────────

    async def tag_topic(self, query: str) -> str:
        """Ask the LLM for a vocabulary topic; anything unrecognised stays general."""
        if self.llm is None:
            return GENERAL_TOPIC
        try:
            answer = await asyncio.wait_for(
                self.llm.complete(
                    [
                        {"role": "system", "content": TOPIC_TAG_SYSTEM_PROMPT},
                        {"role": "user", "content": _topic_tag_prompt(query)},
                    ],
                    max_tokens=10,
                    temperature=0.0,
                    stage="topic_tagging",
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            log_event(logger, "topic_tagging_failed", logging.WARNING, error=type(e).__name__)
            return GENERAL_TOPIC

        tag = answer.strip().strip("`'\".").lower()
        if tag in TOPICS:
            log_event(logger, "topic_tagged", topic=tag)
            return tag
        return GENERAL_TOPIC

    async def _resolve_topic(self, query: str, route: InScope | None) -> str:
        topic = route.topic if route else None
        if topic in TOPICS:
            return topic
        return await self.tag_topic(query)

    # ── Variations ───────────────────────────────────────────────────────────

    async def _generated_variations(self, query: str, topic: str, conversation_context: str) -> list[str]:
        if self.llm is None:
            return []
        try:
            content = await asyncio.wait_for(
                self.llm.complete(
                    [
                        {"role": "system", "content": VARIATION_SYSTEM_PROMPT},
                        {"role": "user", "content": _variation_prompt(query, topic, conversation_context)},
                    ],
                    max_tokens=150,
                    temperature=self.variation_temperature,
                    stage="query_expansion",
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            log_event(
                logger, "query_variation_failed", logging.WARNING,
                error=type(e).__name__,
                query_length=len(query),
            )
            return []
        return parse_variation_lines(content)

    async def generate_variations(
        self,
        query: str,
        topic: str,
        conversation_context: str = "",
    ) -> list[str]:
        """Original query, then template phrasings, then LLM alternatives; deduplicated and capped."""
        templated = [template.format(query=query) for template in templates_for(topic)]
        generated = await self._generated_variations(query, topic, conversation_context)
        variations = dedupe_preserving_order([query, *templated, *generated])
        return variations[: self.max_variations]

    # ── Search ───────────────────────────────────────────────────────────────

    async def _search_variation(self, variation: str, filter: dict) -> list[RetrievedPassage]:
        try:
            return await asyncio.wait_for(self.index.search(variation, filter), timeout=self.timeout)
        except Exception as e:
            log_event(
                logger, "variation_search_failed", logging.WARNING,
                error=type(e).__name__,
                query_length=len(variation),
            )
            return []

    async def retrieve(
        self,
        query: str,
        route: InScope | None = None,
        conversation_context: str = "",
    ) -> list[RetrievedPassage]:
        topic = await self._resolve_topic(query, route)
        variations = await self.generate_variations(query, topic, conversation_context)

        filter = {"topic": topic}
        result_lists = await asyncio.gather(
            *(self._search_variation(variation, filter) for variation in variations)
        )

        merged = merge_results(list(result_lists))
        passages, used_tokens = truncate_to_budget(merged, self.max_tokens, self.count_tokens)

        log_event(
            logger, "retrieval_completed",
            topic=topic,
            variations=len(variations),
            empty_variations=sum(1 for results in result_lists if not results),
            merged=len(merged),
            kept=len(passages),
            tokens=used_tokens,
        )
        return passages
