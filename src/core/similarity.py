# src/core/similarity.py — v2
"""Pluggable string similarity used for near-duplicate detection.

Backends (selected by name, see Settings.similarity_backend):
- levenshtein (default): 1 - edit_distance / max(len(a), len(b))
- token_sort: order-insensitive token ratio, tolerant to word swaps

Both return a score in [0, 1], are symmetric, and score identical strings 1.0.
"""

from __future__ import annotations

from typing import Callable

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

StringSimilarity = Callable[[str, str], float]


def levenshtein_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity; two empty strings are identical."""
    if not a and not b:
        return 1.0
    return float(Levenshtein.normalized_similarity(a, b))


def token_sort_similarity(a: str, b: str) -> float:
    """rapidfuzz token_sort_ratio scaled to [0, 1]."""
    if not a and not b:
        return 1.0
    return fuzz.token_sort_ratio(a, b) / 100.0


_BACKENDS: dict[str, StringSimilarity] = {
    "levenshtein": levenshtein_similarity,
    "token_sort": token_sort_similarity,
}


def get_similarity_backend(name: str = "levenshtein") -> StringSimilarity:
    """Resolve a similarity function by backend name.

    Raises:
        ValueError: If the backend name is unknown.
    """
    try:
        return _BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unsupported similarity backend: {name!r}") from None


def available_backends() -> list[str]:
    return sorted(_BACKENDS)
