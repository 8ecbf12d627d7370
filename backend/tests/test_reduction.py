"""
Unit tests for progressive content reduction.

Tests reduce_content from services/scaffolding/reduction.py
"""

import pytest

from archtutor.models.scaffolding import REDUCTION_ORDER, ReductionLevel
from archtutor.services.scaffolding.reduction import reduce_content

TEXT = (
    "A pipeline overlaps instruction execution. Each pipeline stage does part of the work. "
    "Hazards stall the pipeline. Forwarding removes many data hazards. "
    "Branch prediction reduces control hazards in the pipeline."
)


class TestText:
    """Test text reduction."""

    def test_keeps_leading_fraction_rounded_up(self):
        assert reduce_content("abcdefghij", ReductionLevel.HIGH) == "ab"
        assert reduce_content("abcdefghij", ReductionLevel.MEDIUM) == "abcde"
        assert reduce_content("abcdefghij", ReductionLevel.LOW) == "abcdefgh"
        assert reduce_content("abc", ReductionLevel.HIGH) == "a"

    def test_none_is_identity(self):
        assert reduce_content(TEXT, ReductionLevel.NONE) == TEXT

    def test_importance_keeps_sentences_in_order(self):
        reduced = reduce_content(TEXT, ReductionLevel.MEDIUM, importance=True)
        kept = reduced.split(". ")
        positions = [TEXT.index(sentence.rstrip(".")) for sentence in kept]
        assert len(kept) == 3
        assert positions == sorted(positions)

    def test_empty_text(self):
        assert reduce_content("", ReductionLevel.HIGH) == ""


class TestLists:
    """Test ordered list reduction."""

    def test_medium_keeps_every_other(self):
        assert reduce_content([1, 2, 3, 4, 5], ReductionLevel.MEDIUM) == [1, 3, 5]

    def test_low_drops_every_fifth(self):
        assert reduce_content(list(range(1, 11)), ReductionLevel.LOW) == [1, 2, 3, 4, 6, 7, 8, 9]

    def test_high_keeps_first_and_last(self):
        items = list(range(20))
        reduced = reduce_content(items, ReductionLevel.HIGH)
        assert reduced[0] == 0
        assert reduced[-1] == 19
        assert len(reduced) < 10

    def test_single_item(self):
        assert reduce_content(["only"], ReductionLevel.HIGH) == ["only"]

    def test_other_types_unchanged(self):
        payload = {"a": 1}
        assert reduce_content(payload, ReductionLevel.HIGH) is payload
        assert reduce_content(42, ReductionLevel.MEDIUM) == 42


class TestMonotonicity:
    """Stronger levels never keep more than weaker ones."""

    @pytest.mark.parametrize("size", [0, 1, 2, 3, 4, 5, 7, 10, 13, 50])
    def test_list_sizes(self, size):
        items = list(range(size))
        sizes = [len(reduce_content(items, level)) for level in REDUCTION_ORDER]
        assert sizes[0] == size
        assert sizes == sorted(sizes, reverse=True)

    @pytest.mark.parametrize("importance", [False, True])
    def test_text_sizes(self, importance):
        sizes = [len(reduce_content(TEXT, level, importance)) for level in REDUCTION_ORDER]
        assert sizes[0] == len(TEXT)
        assert sizes == sorted(sizes, reverse=True)
