"""Tests for session-scoped word selection."""
from __future__ import annotations

import random

from vocab_drill.models import EXHAUSTED, NO_WORDS_AVAILABLE
from vocab_drill.selector import select_many, select_next, shuffled


class TestSelectNext:
    def test_empty_pool(self, sample_words):
        assert select_next([], set()) is NO_WORDS_AVAILABLE

    def test_all_excluded(self, sample_words):
        excluded = {w.id for w in sample_words}
        assert select_next(sample_words, excluded) is EXHAUSTED

    def test_one_remaining_is_deterministic(self, sample_words):
        excluded = {w.id for w in sample_words[1:]}
        for seed in range(20):
            assert select_next(sample_words, excluded, random.Random(seed)) == sample_words[0]

    def test_never_returns_excluded(self, sample_words, rng):
        excluded = {"1", "2"}
        for _ in range(50):
            assert select_next(sample_words, excluded, rng).id not in excluded

    def test_does_not_mutate_exclusions(self, sample_words, rng):
        excluded = {"1"}
        select_next(sample_words, excluded, rng)
        assert excluded == {"1"}

    def test_outcomes_are_falsy(self):
        assert not EXHAUSTED
        assert not NO_WORDS_AVAILABLE


class TestShuffled:
    def test_is_permutation(self, rng):
        items = list(range(20))
        result = shuffled(items, rng)
        assert sorted(result) == items
        assert items == list(range(20))

    def test_seeded_is_reproducible(self):
        assert shuffled(range(10), random.Random(7)) == shuffled(range(10), random.Random(7))


class TestSelectMany:
    def test_distinct_and_unused(self, sample_words, rng):
        picked = select_many(sample_words, {"1"}, 3, rng)
        ids = [w.id for w in picked]
        assert len(ids) == 3
        assert len(set(ids)) == 3
        assert "1" not in ids

    def test_capped_by_unused(self, sample_words, rng):
        assert len(select_many(sample_words, {"1", "2", "3"}, 10, rng)) == 2

    def test_zero_count(self, sample_words, rng):
        assert select_many(sample_words, set(), 0, rng) == []
