# src/cache/fingerprint.py — v3
"""Artwork fingerprinting: text normalization, combined hash, near-duplicate test.

Normalization rules (applied in this order, load-bearing for dedup):
  1. Unicode NFKD, combining marks dropped (diacritics: "Véronèse" -> "veronese")
  2. casefold
  3. title decorations deleted: quotes, apostrophes, brackets, CJK book-title marks
  4. any other non-word character becomes a space ("Lisa." -> "lisa")
  5. whitespace collapsed and trimmed
  6. one leading article removed when more words follow ("the starry night")

combined_hash = SHA-256 hex of "<normalized_title>|<normalized_artist>".
The optional year is carried on the fingerprint but never hashed.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata

from artcache.core.models import ArtworkFingerprint
from artcache.core.similarity import StringSimilarity, get_similarity_backend

DEFAULT_SIMILARITY_THRESHOLD = 0.85

LEADING_ARTICLES = frozenset(
    {
        "the", "a", "an",
        "la", "le", "les", "l", "un", "une",
        "el", "il", "lo", "gli", "i",
        "der", "die", "das",
    }
)

# Deleted outright so "L'Absinthe" and "LAbsinthe" agree.
_DECORATION_CHARS = "\"'`«»‹›“”„‘’‚《》〈〉「」『』【】〔〕()[]{}<>"
_DECORATION_TABLE = str.maketrans("", "", _DECORATION_CHARS)

_NON_WORD_RE = re.compile(r"[^\w\s]+")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_title(title: str) -> str:
    """Strip book-title brackets used as decoration, keeping case and spacing."""
    for ch in "《》「」『』":
        title = title.replace(ch, "")
    return title.strip()


def normalize_text(text: str) -> str:
    """Apply the fingerprint normalization rules to a title or artist name."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    lowered = unicodedata.normalize("NFC", stripped).casefold()
    lowered = lowered.translate(_DECORATION_TABLE)
    lowered = _NON_WORD_RE.sub(" ", lowered).replace("_", " ")
    collapsed = _WHITESPACE_RE.sub(" ", lowered).strip()

    words = collapsed.split(" ")
    if len(words) > 1 and words[0] in LEADING_ARTICLES:
        words = words[1:]
    return " ".join(words)


def compute_combined_hash(normalized_title: str, normalized_artist: str) -> str:
    """SHA-256 over the normalized pair."""
    combined = f"{normalized_title}|{normalized_artist}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def compute_fingerprint(
    title: str | None,
    artist: str | None,
    year: str | None = None,
) -> ArtworkFingerprint:
    """Compute the deterministic identity of an artwork. Never raises."""
    normalized_title = normalize_text(title or "")
    normalized_artist = normalize_text(artist or "")
    return ArtworkFingerprint(
        normalized_title=normalized_title,
        normalized_artist=normalized_artist,
        combined_hash=compute_combined_hash(normalized_title, normalized_artist),
        year=year.strip() if year and year.strip() else None,
    )


class FingerprintGenerator:
    """Fingerprint factory plus the near-duplicate comparator.

    The string comparator is injected so edit distance can be swapped for
    another algorithm without touching callers.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        string_similarity: StringSimilarity | None = None,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        self._threshold = threshold
        self._string_similarity = string_similarity or get_similarity_backend()

    @property
    def threshold(self) -> float:
        return self._threshold

    def fingerprint(
        self, title: str | None, artist: str | None, year: str | None = None
    ) -> ArtworkFingerprint:
        return compute_fingerprint(title, artist, year)

    def normalize(self, text: str) -> str:
        return normalize_text(text)

    def name_similarity(self, a: str, b: str) -> float:
        """Similarity of two raw names after normalization."""
        return self._string_similarity(normalize_text(a), normalize_text(b))

    def similarity(self, a: ArtworkFingerprint, b: ArtworkFingerprint) -> float:
        """Score in [0, 1]; artist similarity first, capped by title similarity.

        When either fingerprint has no title (artist-only lookups) the artist
        score stands alone.
        """
        if a.combined_hash == b.combined_hash:
            return 1.0
        score = self._string_similarity(a.normalized_artist, b.normalized_artist)
        if a.normalized_title and b.normalized_title:
            score = min(
                score,
                self._string_similarity(a.normalized_title, b.normalized_title),
            )
        return max(0.0, min(1.0, score))

    def matches(
        self, a: ArtworkFingerprint, b: ArtworkFingerprint, fuzzy: bool = True
    ) -> bool:
        """Exact hash equality, or similarity >= threshold when fuzzy."""
        if a.combined_hash == b.combined_hash:
            return True
        if not fuzzy:
            return False
        return self.similarity(a, b) >= self._threshold
