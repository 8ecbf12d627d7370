"""
Query Router

Decides, without any network call, whether a learner's query belongs to the
computer architecture domain and, if so, what kind of help it asks for.

Two gates:
1. Relevance: off-domain terms reject first, then topic/subtopic/related
   vocabulary accepts, then generic domain keywords accept only inside a
   supporting phrase. Anything else is out of scope.
2. Classification: intent type, topic and subtopic, and a confidence score.
   Low confidence asks the learner to clarify instead of guessing.

The router is deterministic: the same query always yields the same result.
"""

import logging
import re

from archtutor.core.logging import log_event
from archtutor.models.route import (
    Complexity,
    InScope,
    NeedsClarification,
    OutOfScope,
    QueryType,
    RouteResult,
    ScaffoldType,
    TeachingApproach,
)
from archtutor.services.router.vocabulary import (
    COMPARATIVE_PATTERN,
    CONTEXT_KEYWORDS,
    CONTEXT_PATTERNS,
    INTENT_PATTERNS,
    OFF_DOMAIN_TERMS,
    SUGGESTED_TOPICS,
    TOPIC_ADJACENCY,
    TOPICS,
)

logger = logging.getLogger(__name__)

MAIN_TOPIC_SCORE = 0.6
SUBTOPIC_SCORE = 0.8
RELATED_TOPIC_SCORE = 0.4
CLARIFICATION_THRESHOLD = 0.4
MAX_RELATED_CONCEPTS = 3

NUMERIC_PATTERN = re.compile(r"\d")


def _term_pattern(terms: list[str]) -> re.Pattern:
    """One alternation over ``terms``, longest first, bounded by non-word chars."""
    ordered = sorted(set(terms), key=len, reverse=True)
    body = "|".join(re.escape(term) for term in ordered)
    return re.compile(rf"(?<![\w])(?:{body})(?![\w])")


def _normalize(query: str) -> str:
    query = query.replace("’", "'").lower()
    return " ".join(query.split())


class QueryRouter:
    """Deterministic relevance gate and intent/topic classifier."""

    def __init__(self):
        self._off_domain = _term_pattern(OFF_DOMAIN_TERMS)
        self._context_keywords = _term_pattern(CONTEXT_KEYWORDS)
        self._context_phrases = [re.compile(p) for p in CONTEXT_PATTERNS]
        self._comparative = re.compile(COMPARATIVE_PATTERN)
        self._intents = {
            QueryType(name): [re.compile(p) for p in patterns]
            for name, patterns in INTENT_PATTERNS.items()
        }

        self._topic_terms = {topic: _term_pattern(entry["terms"]) for topic, entry in TOPICS.items()}
        self._subtopic_terms = {
            (topic, subtopic): _term_pattern(terms)
            for topic, entry in TOPICS.items()
            for subtopic, terms in entry["subtopics"].items()
        }
        self._related_terms = {
            topic: _term_pattern(concepts) for topic, concepts in TOPIC_ADJACENCY.items()
        }

    # ── Relevance gate ───────────────────────────────────────────────────────

    def _off_domain_term(self, text: str) -> str | None:
        match = self._off_domain.search(text)
        return match.group(0) if match else None

    def _match_topic(self, text: str) -> tuple[str | None, str | None, float, int]:
        """
        Best vocabulary match as ``(topic, subtopic, score, term_hits)``.

        A subtopic match outranks a main-topic match and implies its parent.
        Among equal scores the topic listed first in the vocabulary wins.
        """
        topic, subtopic, score = None, None, 0.0
        hits = 0

        for (parent, name), pattern in self._subtopic_terms.items():
            found = pattern.findall(text)
            hits += len(set(found))
            if found and score < SUBTOPIC_SCORE:
                topic, subtopic, score = parent, name, SUBTOPIC_SCORE

        for name, pattern in self._topic_terms.items():
            found = pattern.findall(text)
            hits += len(set(found))
            if found and score < MAIN_TOPIC_SCORE:
                topic, score = name, MAIN_TOPIC_SCORE

        return topic, subtopic, score, hits

    def _related_topic(self, text: str) -> tuple[str | None, int]:
        """First topic whose adjacent concepts appear, and the distinct concepts matched."""
        topic = None
        found: set[str] = set()
        for name, pattern in self._related_terms.items():
            matches = pattern.findall(text)
            if matches and topic is None:
                topic = name
            found.update(matches)
        return topic, len(found)

    def _has_domain_context(self, text: str) -> bool:
        if not self._context_keywords.search(text):
            return False
        return any(pattern.search(text) for pattern in self._context_phrases)

    # ── Classification ───────────────────────────────────────────────────────

    def _intent(self, text: str) -> tuple[QueryType, float]:
        """Query type with the most pattern hits and its clarity score."""
        counts = {
            query_type: sum(1 for pattern in patterns if pattern.search(text))
            for query_type, patterns in self._intents.items()
        }
        best = max(counts.values())
        if best == 0:
            return QueryType.CONCEPT_EXPLANATION, 0.0

        leaders = [query_type for query_type, count in counts.items() if count == best]
        clarity = 0.2 if len(leaders) == 1 else 0.1
        return leaders[0], clarity

    def _specificity(self, text: str) -> tuple[bool, bool]:
        return bool(NUMERIC_PATTERN.search(text)), bool(self._comparative.search(text))

    @staticmethod
    def _approach(
        query_type: QueryType,
        subtopic: str | None,
        numeric: bool,
        comparative: bool,
    ) -> TeachingApproach:
        if subtopic and (numeric or comparative):
            complexity = Complexity.ADVANCED
        elif subtopic or query_type in (QueryType.PROBLEM_SOLVING, QueryType.COMPARISON):
            complexity = Complexity.INTERMEDIATE
        else:
            complexity = Complexity.BASIC

        if query_type in (QueryType.PROBLEM_SOLVING, QueryType.VERIFICATION):
            scaffold_type = ScaffoldType.PROCEDURAL
        elif query_type in (QueryType.COMPARISON, QueryType.APPLICATION):
            scaffold_type = ScaffoldType.STRATEGIC
        else:
            scaffold_type = ScaffoldType.CONCEPTUAL

        return TeachingApproach(complexity=complexity, scaffold_type=scaffold_type)

    def classify(self, query: str) -> RouteResult:
        text = _normalize(query or "")
        if not text:
            return NeedsClarification(topic=None, confidence=0.0)

        off_domain = self._off_domain_term(text)
        if off_domain:
            log_event(logger, "route_out_of_scope", reason="off_domain", query_length=len(text))
            return OutOfScope(
                reason=f"'{off_domain}' is outside computer architecture and organization.",
                suggested_topics=list(SUGGESTED_TOPICS),
            )

        topic, subtopic, topic_score, term_hits = self._match_topic(text)
        related_topic, related_hits = self._related_topic(text)
        # A query naming only an adjacent concept is scored through that concept
        if topic is None and related_topic is not None:
            topic_score = RELATED_TOPIC_SCORE
            term_hits = related_hits

        if topic is None and related_topic is None and not self._has_domain_context(text):
            log_event(logger, "route_out_of_scope", reason="no_domain_terms", query_length=len(text))
            return OutOfScope(
                reason="The question does not mention a computer architecture concept.",
                suggested_topics=list(SUGGESTED_TOPICS),
            )

        query_type, clarity = self._intent(text)
        numeric, comparative = self._specificity(text)

        word_count = len(text.split())
        keyword_hits = term_hits + len(set(self._context_keywords.findall(text)))
        density = min(0.2, keyword_hits / word_count * 0.8)

        confidence = (
            0.4 * topic_score / SUBTOPIC_SCORE
            + clarity
            + density
            + (0.1 if numeric else 0.0)
            + (0.1 if comparative else 0.0)
        )
        confidence = round(min(1.0, confidence), 4)

        if confidence < CLARIFICATION_THRESHOLD:
            log_event(
                logger, "route_needs_clarification",
                topic=topic or related_topic,
                confidence=confidence,
                query_length=len(text),
            )
            return NeedsClarification(topic=topic or related_topic, confidence=confidence)

        topic = topic or related_topic or "general"
        result = InScope(
            query_type=query_type,
            topic=topic,
            subtopic=subtopic,
            confidence=confidence,
            related_concepts=TOPIC_ADJACENCY.get(topic, [])[:MAX_RELATED_CONCEPTS],
            approach=self._approach(query_type, subtopic, numeric, comparative),
        )
        log_event(
            logger, "route_in_scope",
            query_type=query_type.value,
            topic=topic,
            subtopic=subtopic,
            confidence=confidence,
        )
        return result
