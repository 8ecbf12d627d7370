"""
Progressive Content Reduction

Shrinks retrieved or generated content as the learner shows competence.
Reduction never grows content, and for the same input a stronger level
never keeps more than a weaker one.
"""

import math
import re
from collections import Counter
from typing import Any

from archtutor.models.scaffolding import ReductionLevel

# Fraction of text kept per level
KEEP_FRACTION = {
    ReductionLevel.NONE: 1.0,
    ReductionLevel.LOW: 0.8,
    ReductionLevel.MEDIUM: 0.5,
    ReductionLevel.HIGH: 0.2,
}

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
WORD_PATTERN = re.compile(r"[a-z0-9]+")


# ── Text ─────────────────────────────────────────────────────────────────────

def _leading_fraction(text: str, fraction: float) -> str:
    return text[: math.ceil(len(text) * fraction)]


def _sentence_scores(sentences: list[str]) -> list[float]:
    """Average document-wide term frequency of each sentence's words."""
    words_per_sentence = [WORD_PATTERN.findall(s.lower()) for s in sentences]
    frequencies = Counter(w for words in words_per_sentence for w in words if len(w) > 3)
    scores = []
    for words in words_per_sentence:
        weighted = [frequencies[w] for w in words if len(w) > 3]
        scores.append(sum(weighted) / len(weighted) if weighted else 0.0)
    return scores


def _important_sentences(text: str, fraction: float) -> str:
    sentences = [s for s in SENTENCE_SPLIT.split(text.strip()) if s]
    if len(sentences) <= 1:
        return _leading_fraction(text, fraction)

    keep = math.ceil(len(sentences) * fraction)
    scores = _sentence_scores(sentences)
    # Rank by score, earlier sentence first on ties, so a smaller keep count
    # always selects a subset of a larger one
    ranked = sorted(range(len(sentences)), key=lambda i: (-scores[i], i))
    chosen = sorted(ranked[:keep])
    return " ".join(sentences[i] for i in chosen)


def reduce_text(text: str, level: ReductionLevel, importance: bool = False) -> str:
    fraction = KEEP_FRACTION[ReductionLevel(level)]
    if fraction >= 1.0 or not text:
        return text
    if importance:
        return _important_sentences(text, fraction)
    return _leading_fraction(text, fraction)


# ── Ordered lists ────────────────────────────────────────────────────────────

def _high_reduction(items: list) -> list:
    if len(items) <= 2:
        return items[:1]
    # First and last plus a centred sample of the middle, never more than the
    # medium level would keep
    medium_size = math.ceil(len(items) / 2)
    middle_count = min(math.ceil((len(items) - 2) * 0.2), medium_size - 2)
    if middle_count <= 0:
        return [items[0], items[-1]]
    middle_start = (len(items) - middle_count) // 2
    return [items[0], *items[middle_start:middle_start + middle_count], items[-1]]


def _medium_reduction(items: list) -> list:
    return [item for index, item in enumerate(items) if index % 2 == 0]


def _low_reduction(items: list) -> list:
    return [item for index, item in enumerate(items) if (index + 1) % 5 != 0]


def reduce_items(items: list, level: ReductionLevel) -> list:
    level = ReductionLevel(level)
    if level == ReductionLevel.HIGH:
        return _high_reduction(items)
    elif level == ReductionLevel.MEDIUM:
        return _medium_reduction(items)
    elif level == ReductionLevel.LOW:
        return _low_reduction(items)
    return list(items)


def reduce_content(content: Any, level: ReductionLevel, importance: bool = False) -> Any:
    """
    Reduce text or an ordered list according to ``level``.

    Text keeps a leading fraction (or, with ``importance``, the top-scoring
    sentences in original order). Lists are thinned by position. Any other
    type is returned unchanged.
    """
    if isinstance(content, str):
        return reduce_text(content, level, importance)
    if isinstance(content, (list, tuple)):
        return reduce_items(list(content), level)
    return content
