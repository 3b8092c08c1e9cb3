"""Edit-distance similarity used for "close, check spelling" hints."""
from __future__ import annotations


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def calculate_similarity(a: str, b: str) -> float:
    """Return 1 - distance / max_len, in [0, 1].

    Empty input on either side scores 0, identical non-empty strings score 1.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))
