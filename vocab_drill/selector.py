"""Session-scoped random word selection."""
from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from typing import TypeVar

from vocab_drill.models import EXHAUSTED, NO_WORDS_AVAILABLE

T = TypeVar("T")


def select_next(pool: Sequence[T], excluded: Iterable[str], rng: random.Random | None = None):
    """Pick one item of *pool* whose id is not in *excluded*, uniformly at random.

    Returns NO_WORDS_AVAILABLE for an empty pool and EXHAUSTED when every
    item is excluded. Never clears *excluded*; recycling is the caller's call.
    """
    if not pool:
        return NO_WORDS_AVAILABLE
    excluded = set(excluded)
    unused = [item for item in pool if item.id not in excluded]
    if not unused:
        return EXHAUSTED
    return (rng or random).choice(unused)


def shuffled(items: Iterable[T], rng: random.Random | None = None) -> list[T]:
    """Fisher-Yates shuffle into a new list."""
    rng = rng or random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def select_many(
    pool: Sequence[T],
    excluded: Iterable[str],
    count: int,
    rng: random.Random | None = None,
) -> list[T]:
    """Up to *count* distinct unused items in random order."""
    if count <= 0:
        return []
    excluded = set(excluded)
    unused = [item for item in pool if item.id not in excluded]
    return shuffled(unused, rng)[:count]
