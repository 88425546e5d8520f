# tests/unit/core/test_similarity.py — v2
"""Tests for core/similarity.py — pluggable string similarity backends."""

from __future__ import annotations

import pytest

from artcache.core.similarity import (
    available_backends,
    get_similarity_backend,
    levenshtein_similarity,
    token_sort_similarity,
)


class TestLevenshteinSimilarity:
    def test_identical(self):
        assert levenshtein_similarity("mona lisa", "mona lisa") == 1.0

    def test_both_empty(self):
        assert levenshtein_similarity("", "") == 1.0

    def test_one_empty(self):
        assert levenshtein_similarity("", "mona lisa") == 0.0

    def test_one_edit(self):
        # 1 insertion over max length 10
        assert levenshtein_similarity("mona lisa", "mona lisaa") == pytest.approx(0.9)

    def test_symmetric(self):
        a, b = "leonardo da vinci", "leonardo di vinci"
        assert levenshtein_similarity(a, b) == levenshtein_similarity(b, a)


class TestTokenSortSimilarity:
    def test_word_order_ignored(self):
        assert token_sort_similarity("van gogh vincent", "vincent van gogh") == 1.0

    def test_range(self):
        score = token_sort_similarity("starry night", "water lilies")
        assert 0.0 <= score < 0.5


class TestBackendRegistry:
    def test_default_is_levenshtein(self):
        assert get_similarity_backend() is levenshtein_similarity

    def test_lookup_by_name(self):
        assert get_similarity_backend("token_sort") is token_sort_similarity

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported similarity backend"):
            get_similarity_backend("soundex")

    def test_available(self):
        assert available_backends() == ["levenshtein", "token_sort"]
