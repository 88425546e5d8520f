# src/remote/base_store.py — v1
"""Abstract shared-store interface consumed by the cache orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from artcache.core.models import ArtistRecord, ArtworkFingerprint, ArtworkRecord


class BaseRemoteStore(ABC):
    """Find / search / upsert / increment over artworks and artists."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether an endpoint and credential are available."""

    # --- Read path: failures degrade to a miss ---

    @abstractmethod
    async def find_by_fingerprint(
        self, fingerprint: ArtworkFingerprint
    ) -> ArtworkRecord | None:
        """Exact lookup by combined_hash."""

    @abstractmethod
    async def search_near(self, title: str, artist: str) -> list[ArtworkRecord]:
        """Bounded prefix search used as a fuzzy canonicalization pool."""

    @abstractmethod
    async def find_artist(self, name: str) -> ArtistRecord | None:
        """Exact name, then normalized name, then bounded fuzzy search."""

    # --- Write path: failures raise SaveFailed / Unauthorized ---

    @abstractmethod
    async def upsert_artwork(self, record: ArtworkRecord) -> ArtworkRecord | None:
        """Find-then-update-or-insert, resolving insert conflicts by update."""

    @abstractmethod
    async def upsert_artist_introduction(self, name: str, introduction: str) -> None:
        """Find-then-update-or-insert for an artist biography."""

    @abstractmethod
    async def increment_view_count(self, artwork_id: str) -> None:
        """Bump view_count / last_viewed_at. Never raises."""

    async def aclose(self) -> None:
        """Release network resources."""
