"""Hybrid (vector + keyword) distance scoring.

All scores are distances: 0.0 is a perfect match and larger is worse.
- vector distance: ``1 - cosine_similarity`` clamped at 0, in ``[0, 2]``
- keyword distance: ``1 - matched_query_terms / query_terms``, in ``[0, 1]``
- hybrid: ``alpha * vector + (1 - alpha) * keyword``
"""

from __future__ import annotations

import re
from math import sqrt

_TOKEN_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


def tokenize(text: str) -> set[str]:
    return {token.lower() for token in _TOKEN_PATTERN.findall(text)}


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


def vector_distance(a: list[float], b: list[float]) -> float:
    return max(0.0, 1.0 - cosine_similarity(a, b))


def keyword_distance(query_terms: set[str], text_terms: set[str]) -> float:
    if not query_terms:
        return 0.0
    return 1.0 - len(query_terms & text_terms) / len(query_terms)


def hybrid_score(
    *,
    vector: float | None,
    keyword: float | None,
    alpha: float,
) -> float:
    """Blend both distances; a missing side hands its weight to the other."""

    if vector is None and keyword is None:
        raise ValueError("hybrid_score needs at least one component")
    if keyword is None:
        return vector  # type: ignore[return-value]
    if vector is None:
        return keyword
    return alpha * vector + (1.0 - alpha) * keyword
