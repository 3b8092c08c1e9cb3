"""Translation judge: expands the stored answer field and compares submissions.

Answer field grammar:
  ziemniak/kartofel            -- any "/"-separated alternative is accepted
  pogodzić się z (czymś)       -- parenthesized text is optional

Correctness is exact equality after normalization. Similarity is reported
alongside the verdict but never decides it.
"""
from __future__ import annotations

import itertools
import re

from vocab_drill.models import Verdict
from vocab_drill.similarity import calculate_similarity

_WHITESPACE = re.compile(r"\s+")
_OPTIONAL = re.compile(r"\(([^()]*)\)")

NEAR_MISS_THRESHOLD = 0.8


def normalize_answer(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().lower()


def _split_alternatives(spec: str) -> list[str]:
    alternatives = [alt.strip() for alt in spec.split("/")]
    return [alt for alt in alternatives if alt]


def _has_balanced_parens(text: str) -> bool:
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
            if depth > 1:
                return False
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _expand_optional(alternative: str) -> list[str]:
    """Cross product of each (...) group being dropped or kept as plain text."""
    if not _has_balanced_parens(alternative):
        return [alternative]
    parts = _OPTIONAL.split(alternative)
    # parts alternates literal, group, literal, group, ..., literal
    literals = parts[0::2]
    groups = parts[1::2]
    if not groups:
        return [alternative]

    variants = []
    for choice in itertools.product((False, True), repeat=len(groups)):
        pieces = [literals[0]]
        for keep, group, literal in zip(choice, groups, literals[1:]):
            if keep:
                pieces.append(group)
            pieces.append(literal)
        variants.append("".join(pieces))
    return variants


def expand_answer_spec(spec: str) -> list[str]:
    """All normalized accepted variants, in first-seen order, without duplicates."""
    alternatives = _split_alternatives(spec) or [spec]
    seen: dict[str, None] = {}
    for alt in alternatives:
        for variant in _expand_optional(alt):
            normalized = normalize_answer(variant)
            if normalized:
                seen.setdefault(normalized, None)
    if not seen:
        literal = normalize_answer(spec)
        if literal:
            seen[literal] = None
    return list(seen)


def canonical_answer(spec: str) -> str:
    alternatives = _split_alternatives(spec)
    return alternatives[0] if alternatives else spec.strip()


def check(
    accepted_answer_spec: str,
    submitted: str,
    near_miss_threshold: float = NEAR_MISS_THRESHOLD,
) -> Verdict:
    normalized = normalize_answer(submitted)
    variants = expand_answer_spec(accepted_answer_spec)

    is_correct = bool(normalized) and normalized in variants
    similarity = max(
        (calculate_similarity(normalized, v) for v in variants),
        default=0.0,
    )
    near_miss = (
        not is_correct
        and bool(normalized)
        and similarity >= near_miss_threshold
    )
    return Verdict(
        is_correct=is_correct,
        canonical_answer=canonical_answer(accepted_answer_spec),
        submitted_answer=submitted,
        similarity=similarity,
        near_miss=near_miss,
    )
