# src/api/service.py — v1
"""Cache orchestrator: the single API the application calls.

Composes the local ephemeral cache and the shared store:

  1. fingerprint the (title, artist) pair
  2. local hit -> return (artist introduction still refreshed from the store)
  3. remote exact hit -> view-count bump in the background, write-through, return
  4. remote miss without candidate -> None
  5. candidate at or above the confidence gate -> canonicalize onto a
     near-duplicate if one exists, else upsert a new record
  6. candidate below the gate -> returned, never persisted

Artwork and artist lookups run concurrently. Read failures collapse to a
miss; write failures are logged and never block the response.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Coroutine, Iterable

from artcache.cache.fingerprint import FingerprintGenerator, clean_title
from artcache.cache.local_store import LocalEphemeralCache
from artcache.core.models import (
    ArtistRecord,
    ArtworkFingerprint,
    ArtworkRecord,
    NarrationCandidate,
    ResolvedArtwork,
)
from artcache.logging.context import set_artwork_context, set_operation_context
from artcache.remote.base_store import BaseRemoteStore
from artcache.remote.errors import CacheBackendError, SaveFailed, Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_GATE = 0.8
DEFAULT_UNKNOWN_ARTIST_NAMES = ("未知艺术家", "unknown artist", "unknown")


class ArtworkCacheService:
    """Two-tier artwork knowledge cache with near-duplicate canonicalization."""

    def __init__(
        self,
        remote: BaseRemoteStore,
        fingerprints: FingerprintGenerator | None = None,
        local_cache: LocalEphemeralCache | None = None,
        confidence_gate: float = DEFAULT_CONFIDENCE_GATE,
        unknown_artist_names: Iterable[str] = DEFAULT_UNKNOWN_ARTIST_NAMES,
    ) -> None:
        self._remote = remote
        self._fingerprints = fingerprints or FingerprintGenerator()
        self._local = local_cache
        self._confidence_gate = confidence_gate
        self._unknown_artists = {n.strip().casefold() for n in unknown_artist_names}
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def fingerprints(self) -> FingerprintGenerator:
        return self._fingerprints

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve_narration(
        self,
        title: str,
        artist: str,
        year: str | None = None,
        candidate: NarrationCandidate | None = None,
    ) -> ResolvedArtwork | None:
        """Resolve cached narration for an artwork, persisting gated candidates.

        The artist introduction on the result is the store's when it has a
        non-empty one, otherwise the candidate's.

        Returns:
            ResolvedArtwork, or None on a full miss without candidate content.
        """
        fp = self._fingerprint(title, artist, year, "resolve_narration")
        return await self._resolve(
            fp, candidate, self._store_introduction(artist), backfill_artist=True
        )

    async def resolve_artist_introduction(
        self,
        artist_name: str,
        candidate_introduction: str | None = None,
    ) -> str | None:
        """Resolve an artist biography; the store is authoritative.

        A missing or empty stored introduction yields the candidate, which is
        then backfilled into the store in the background.
        """
        set_operation_context("resolve_artist_introduction")
        candidate_introduction = _clean(candidate_introduction)
        if self.is_placeholder_artist(artist_name):
            return candidate_introduction

        record = await self._find_artist(artist_name)
        if record is not None and record.has_introduction:
            return record.introduction

        if candidate_introduction is not None:
            # Backfill under the stored name so a fuzzy match updates that row
            target = record.name if record is not None else artist_name
            self._spawn(
                self._backfill_artist(target, candidate_introduction),
                name="artist_backfill",
            )
        return candidate_introduction

    async def resolve_with_artist_introduction(
        self,
        title: str,
        artist: str,
        year: str | None = None,
        candidate: NarrationCandidate | None = None,
        candidate_introduction: str | None = None,
    ) -> ResolvedArtwork | None:
        """resolve_narration with the full artist-introduction precedence and backfill."""
        fp = self._fingerprint(title, artist, year, "resolve_with_artist_introduction")
        if candidate_introduction is None and candidate is not None:
            candidate_introduction = candidate.artist_introduction
        return await self._resolve(
            fp,
            candidate,
            self.resolve_artist_introduction(artist, candidate_introduction),
            backfill_artist=False,
        )

    def is_placeholder_artist(self, name: str | None) -> bool:
        """Empty or placeholder names ("未知艺术家") never reach the artists table."""
        if not name or not name.strip():
            return True
        return name.strip().casefold() in self._unknown_artists

    def clear_local_cache(self) -> None:
        if self._local is not None:
            self._local.clear()

    async def drain(self) -> None:
        """Wait for in-flight background work (view counts, backfills)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._remote.aclose()

    async def __aenter__(self) -> ArtworkCacheService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _fingerprint(
        self, title: str, artist: str, year: str | None, operation: str
    ) -> ArtworkFingerprint:
        fp = self._fingerprints.fingerprint(title, artist, year)
        set_artwork_context(fp.combined_hash, f"{title} / {artist}")
        set_operation_context(operation)
        return fp

    async def _resolve(
        self,
        fp: ArtworkFingerprint,
        candidate: NarrationCandidate | None,
        introduction: Awaitable[str | None],
        backfill_artist: bool,
    ) -> ResolvedArtwork | None:
        fallback_intro = _clean(candidate.artist_introduction) if candidate else None

        cached = self._local.get(fp) if self._local is not None else None
        if cached is not None:
            logger.debug("Local cache hit")
            intro = await introduction
            return ResolvedArtwork.from_record(cached, "local", intro or fallback_intro)

        record, intro = await asyncio.gather(self._find_remote(fp), introduction)

        if record is not None:
            logger.info("Shared store hit for '%s' by '%s'", record.title, record.artist)
            self._bump_view_count(record)
            self._cache_locally(fp, record)
            return ResolvedArtwork.from_record(record, "remote", intro or fallback_intro)

        if candidate is None:
            logger.debug("Cache miss and no candidate content")
            return None

        if candidate.confidence is None or candidate.confidence < self._confidence_gate:
            logger.info(
                "Candidate confidence %s below gate %.2f, not persisting",
                candidate.confidence, self._confidence_gate,
            )
            resolved = ResolvedArtwork.from_candidate(candidate, fp)
            resolved.artist_introduction = intro or fallback_intro
            return resolved

        canonical = await self._find_canonical(fp)
        if canonical is not None:
            logger.info(
                "Near-duplicate of '%s' by '%s', reusing canonical record %s",
                canonical.title, canonical.artist, canonical.id,
            )
            self._bump_view_count(canonical)
            self._cache_locally(fp, canonical)
            return ResolvedArtwork.from_record(canonical, "canonical", intro or fallback_intro)

        new_record = self._record_from_candidate(candidate, fp)
        stored = await self._persist(new_record)
        self._cache_locally(fp, stored or new_record)

        if (
            backfill_artist
            and intro is None
            and fallback_intro is not None
            and not self.is_placeholder_artist(candidate.artist)
        ):
            self._spawn(
                self._backfill_artist(candidate.artist, fallback_intro),
                name="artist_backfill",
            )

        resolved = ResolvedArtwork.from_candidate(
            candidate, fp, record_id=stored.id if stored is not None else None
        )
        resolved.artist_introduction = intro or fallback_intro
        return resolved

    @staticmethod
    def _search_prefixes(fp: ArtworkFingerprint) -> list[tuple[str, str]]:
        """Full normalized prefixes, then the first tokens of each."""
        full = (fp.normalized_title, fp.normalized_artist)
        first = (
            fp.normalized_title.split(" ")[0] if fp.normalized_title else "",
            fp.normalized_artist.split(" ")[0] if fp.normalized_artist else "",
        )
        return [full] if first == full else [full, first]

    async def _find_canonical(self, fp: ArtworkFingerprint) -> ArtworkRecord | None:
        """Best near-duplicate that clears the threshold, if any.

        The full-prefix pool is searched first; the wider first-token pool
        is only consulted when it yields nothing close enough.
        """
        for title, artist in self._search_prefixes(fp):
            try:
                pool = await self._remote.search_near(title, artist)
            except CacheBackendError as e:
                logger.warning("Near-duplicate search failed, treating as none: %s", e)
                return None
            best = self._best_near_duplicate(fp, pool)
            if best is not None:
                return best
        return None

    def _best_near_duplicate(
        self, fp: ArtworkFingerprint, pool: list[ArtworkRecord]
    ) -> ArtworkRecord | None:
        best: ArtworkRecord | None = None
        best_score = 0.0
        for record in pool:
            score = self._fingerprints.similarity(fp, self._record_fingerprint(record))
            if score >= self._fingerprints.threshold and score > best_score:
                best, best_score = record, score
        return best

    def _record_fingerprint(self, record: ArtworkRecord) -> ArtworkFingerprint:
        return ArtworkFingerprint(
            normalized_title=record.normalized_title
            or self._fingerprints.normalize(record.title),
            normalized_artist=record.normalized_artist
            or self._fingerprints.normalize(record.artist),
            combined_hash=record.combined_hash,
            year=record.year,
        )

    @staticmethod
    def _record_from_candidate(
        candidate: NarrationCandidate, fp: ArtworkFingerprint
    ) -> ArtworkRecord:
        return ArtworkRecord(
            combined_hash=fp.combined_hash,
            normalized_title=fp.normalized_title,
            normalized_artist=fp.normalized_artist,
            title=clean_title(candidate.title) or candidate.title,
            artist=candidate.artist,
            year=candidate.year or fp.year,
            style=candidate.style,
            medium=candidate.medium,
            museum=candidate.museum,
            image_url=candidate.image_url,
            sources=list(candidate.sources),
            narration=candidate.narration,
            summary=candidate.summary,
            confidence=candidate.confidence,
            recognized=candidate.recognized,
        )

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _find_remote(self, fp: ArtworkFingerprint) -> ArtworkRecord | None:
        try:
            return await self._remote.find_by_fingerprint(fp)
        except CacheBackendError as e:
            logger.warning("Shared store lookup failed, treating as miss: %s", e)
            return None

    async def _find_artist(self, artist_name: str) -> ArtistRecord | None:
        if self.is_placeholder_artist(artist_name):
            return None
        try:
            return await self._remote.find_artist(artist_name)
        except CacheBackendError as e:
            logger.warning("Artist lookup for '%s' failed: %s", artist_name, e)
            return None

    async def _store_introduction(self, artist_name: str) -> str | None:
        """Non-empty stored introduction, or None (miss, empty or unreachable)."""
        record = await self._find_artist(artist_name)
        if record is None or not record.has_introduction:
            return None
        return record.introduction

    async def _persist(self, record: ArtworkRecord) -> ArtworkRecord | None:
        """Primary artwork write. Failures are logged, never raised."""
        try:
            stored = await self._remote.upsert_artwork(record)
        except Unauthorized as e:
            logger.error("Shared store rejected the write for '%s': %s", record.title, e)
            return None
        except SaveFailed as e:
            logger.warning("Could not save '%s' to the shared store: %s", record.title, e)
            return None
        logger.info("Saved '%s' by '%s' to the shared store", record.title, record.artist)
        return stored

    async def _backfill_artist(self, artist_name: str, introduction: str) -> None:
        try:
            await self._remote.upsert_artist_introduction(artist_name, introduction)
        except CacheBackendError as e:
            logger.warning("Artist introduction backfill for '%s' failed: %s", artist_name, e)
            return
        logger.info("Backfilled artist introduction for '%s'", artist_name)

    def _bump_view_count(self, record: ArtworkRecord) -> None:
        if record.id:
            self._spawn(self._remote.increment_view_count(record.id), name="view_count")

    def _cache_locally(self, fp: ArtworkFingerprint, record: ArtworkRecord) -> None:
        if self._local is not None:
            self._local.put(fp, record)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Start a fire-and-forget unit; the caller never awaits it."""
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), error)


def _clean(text: str | None) -> str | None:
    if text is None or not text.strip():
        return None
    return text
