# src/remote/rest_client.py — v2
"""PostgREST-style shared-store client over httpx.

Tables: ``artworks`` (unique combined_hash) and ``artists`` (unique name),
plus the ``rpc/increment_artwork_view_count`` function.

Read operations never raise: transport failures are retried, then collapse
to a miss. Write operations raise Unauthorized or SaveFailed so the caller
can log them. Inserts that lose a uniqueness race (409) are re-resolved as
updates of the winning row.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Literal

import httpx

from artcache.cache.fingerprint import FingerprintGenerator
from artcache.core.models import ArtistRecord, ArtworkFingerprint, ArtworkRecord
from artcache.remote.base_store import BaseRemoteStore
from artcache.remote.errors import (
    CacheBackendError,
    Conflict,
    InvalidResponse,
    NetworkError,
    RequestFailed,
    SaveFailed,
    Unauthorized,
)
from artcache.remote.retry import RetryConfig, RetryExhausted, with_retry

logger = logging.getLogger(__name__)

ARTWORKS_TABLE = "artworks"
ARTISTS_TABLE = "artists"
INCREMENT_RPC = "rpc/increment_artwork_view_count"

# Columns a PATCH may touch. id, combined_hash, view_count and timestamps stay store-owned.
ARTWORK_UPDATE_FIELDS = (
    "title", "artist", "year", "style", "medium", "museum", "image_url",
    "sources", "narration", "summary", "confidence", "recognized",
    "normalized_title", "normalized_artist",
)
# Columns the store fills with its own defaults on insert.
ARTWORK_STORE_MANAGED = {"id", "view_count", "last_viewed_at", "created_at", "updated_at"}

ArtistFallback = Literal["none", "first_candidate"]


def raise_for_status(response: httpx.Response) -> None:
    """Translate an HTTP status into the error taxonomy."""
    code = response.status_code
    if 200 <= code < 300:
        return
    detail = response.text[:300]
    if code in (401, 403):
        raise Unauthorized(f"HTTP {code}: {detail}", status_code=code)
    if code == 409:
        raise Conflict(f"HTTP {code}: {detail}", status_code=code)
    if code >= 500 or code in (408, 429):
        raise NetworkError(f"HTTP {code}: {detail}", status_code=code)
    raise RequestFailed(f"HTTP {code}: {detail}", status_code=code)


def decode_rows(response: httpx.Response) -> list[dict[str, Any]]:
    """Decode a PostgREST JSON body into a list of row dicts."""
    if not response.content or not response.content.strip():
        return []
    data = response.json()
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise InvalidResponse(f"expected a JSON array of rows, got {type(data).__name__}")
    return data


class RestRemoteStore(BaseRemoteStore):
    """Shared-store client speaking the PostgREST dialect."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        fingerprints: FingerprintGenerator | None = None,
        *,
        read_timeout_s: float = 8.0,
        search_timeout_s: float = 6.0,
        write_timeout_s: float = 10.0,
        increment_timeout_s: float = 5.0,
        read_retry_count: int = 1,
        write_retry_count: int = 2,
        retry_base_delay_s: float = 1.0,
        search_limit: int = 5,
        artist_fuzzy_fallback: ArtistFallback = "none",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._fingerprints = fingerprints or FingerprintGenerator()
        self._read_timeout = read_timeout_s
        self._search_timeout = search_timeout_s
        self._write_timeout = write_timeout_s
        self._increment_timeout = increment_timeout_s
        self._read_retry_count = read_retry_count
        self._write_retry_count = write_retry_count
        self._retry_base_delay = retry_base_delay_s
        self._search_limit = search_limit
        self._artist_fallback = artist_fuzzy_fallback
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self._read_timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> RestRemoteStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _retry_config(self, retries: int) -> RetryConfig:
        return RetryConfig(max_retries=retries, base_delay_s=self._retry_base_delay)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        timeout: float,
        representation: bool = False,
    ) -> httpx.Response:
        headers = {"Prefer": "return=representation"} if representation else None
        response = await self._get_client().request(
            method, f"/{path}", params=params, json=payload,
            headers=headers, timeout=timeout,
        )
        raise_for_status(response)
        return response

    async def _select(
        self, table: str, params: dict[str, Any], timeout: float
    ) -> list[dict[str, Any]]:
        response = await self._send("GET", table, params={"select": "*", **params}, timeout=timeout)
        return decode_rows(response)

    async def _read(
        self,
        operation: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        retries: int,
    ) -> Any:
        """Run a read with retries; every failure becomes None."""
        try:
            return await with_retry(
                fn, *args, operation=operation, config=self._retry_config(retries)
            )
        except RetryExhausted as e:
            logger.warning(
                "%s: store unreachable after %d attempts, treating as miss (%s)",
                operation, e.attempts, e.last_error,
            )
        except Unauthorized as e:
            logger.error("%s: store rejected the API key, treating as miss (%s)", operation, e)
        except CacheBackendError as e:
            logger.warning("%s: request rejected, treating as miss (%s)", operation, e)
        return None

    async def _write(
        self,
        operation: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        retries: int,
    ) -> Any:
        """Run a write with retries; Unauthorized and Conflict propagate, the rest is SaveFailed."""
        try:
            return await with_retry(
                fn, *args, operation=operation, config=self._retry_config(retries)
            )
        except (Unauthorized, Conflict):
            raise
        except RetryExhausted as e:
            raise SaveFailed(
                f"{operation} failed after {e.attempts} attempts: {e.last_error}",
                status_code=e.last_error.status_code,
                cause=e.last_error,
            ) from e
        except CacheBackendError as e:
            raise SaveFailed(
                f"{operation} rejected: {e}", status_code=e.status_code, cause=e
            ) from e

    # ------------------------------------------------------------------
    # Artworks: read path
    # ------------------------------------------------------------------

    async def _fetch_artwork_by_hash(
        self, combined_hash: str, timeout: float
    ) -> ArtworkRecord | None:
        rows = await self._select(
            ARTWORKS_TABLE, {"combined_hash": f"eq.{combined_hash}"}, timeout
        )
        return ArtworkRecord.model_validate(rows[0]) if rows else None

    async def find_by_fingerprint(
        self,
        fingerprint: ArtworkFingerprint,
        retry_count: int | None = None,
    ) -> ArtworkRecord | None:
        """Exact lookup by combined_hash; None on miss or exhausted retries."""
        if not self.is_configured:
            return None
        retries = self._read_retry_count if retry_count is None else retry_count
        return await self._read(
            "find_artwork",
            self._fetch_artwork_by_hash,
            fingerprint.combined_hash,
            self._read_timeout,
            retries=retries,
        )

    async def _fetch_near(self, normalized_title: str, normalized_artist: str) -> list[ArtworkRecord]:
        params: dict[str, Any] = {"limit": self._search_limit}
        if normalized_title:
            params["normalized_title"] = f"ilike.{normalized_title}*"
        if normalized_artist:
            params["normalized_artist"] = f"ilike.{normalized_artist}*"
        rows = await self._select(ARTWORKS_TABLE, params, self._search_timeout)
        return [ArtworkRecord.model_validate(r) for r in rows[: self._search_limit]]

    async def search_near(self, title: str, artist: str) -> list[ArtworkRecord]:
        """Prefix search on normalized fields, bounded by search_limit."""
        if not self.is_configured:
            return []
        fp = self._fingerprints.fingerprint(title, artist)
        if not fp.normalized_title and not fp.normalized_artist:
            return []
        found = await self._read(
            "search_artworks",
            self._fetch_near,
            fp.normalized_title,
            fp.normalized_artist,
            retries=self._read_retry_count,
        )
        return found or []

    # ------------------------------------------------------------------
    # Artworks: write path
    # ------------------------------------------------------------------

    async def _lookup_artwork_for_write(self, combined_hash: str) -> ArtworkRecord | None:
        """Single-attempt lookup before a write; a miss or failure means insert."""
        try:
            return await self._fetch_artwork_by_hash(combined_hash, self._read_timeout)
        except Unauthorized:
            raise
        except Exception as e:
            logger.debug("Pre-write lookup for %s failed (%s), assuming new", combined_hash[:12], e)
            return None

    @staticmethod
    def _artwork_update_payload(record: ArtworkRecord) -> dict[str, Any]:
        data = record.model_dump(mode="json", include=set(ARTWORK_UPDATE_FIELDS))
        return {k: v for k, v in data.items() if v is not None}

    @staticmethod
    def _artwork_insert_payload(record: ArtworkRecord) -> dict[str, Any]:
        data = record.model_dump(mode="json", exclude=ARTWORK_STORE_MANAGED)
        return {k: v for k, v in data.items() if v is not None}

    async def _patch_artwork(self, artwork_id: str, payload: dict[str, Any]) -> ArtworkRecord | None:
        response = await self._send(
            "PATCH", ARTWORKS_TABLE, params={"id": f"eq.{artwork_id}"},
            payload=payload, timeout=self._write_timeout, representation=True,
        )
        rows = decode_rows(response)
        return ArtworkRecord.model_validate(rows[0]) if rows else None

    async def _post_artwork(self, payload: dict[str, Any]) -> ArtworkRecord | None:
        response = await self._send(
            "POST", ARTWORKS_TABLE, payload=payload,
            timeout=self._write_timeout, representation=True,
        )
        rows = decode_rows(response)
        return ArtworkRecord.model_validate(rows[0]) if rows else None

    async def upsert_artwork(
        self,
        record: ArtworkRecord,
        retry_count: int | None = None,
    ) -> ArtworkRecord | None:
        """Update the row sharing combined_hash, or insert a new one.

        Returns the stored representation when the store sends one back.

        Raises:
            Unauthorized: Missing or rejected credential.
            SaveFailed: Retries exhausted, request rejected or conflict unresolved.
        """
        if not self.is_configured:
            raise Unauthorized("shared store is not configured")
        retries = self._write_retry_count if retry_count is None else retry_count

        existing = await self._lookup_artwork_for_write(record.combined_hash)
        if existing is not None and existing.id:
            logger.info(
                "Updating artwork '%s' by '%s' (id=%s)", record.title, record.artist, existing.id
            )
            return await self._update_artwork(existing.id, record, retries)

        logger.info("Inserting artwork '%s' by '%s'", record.title, record.artist)
        try:
            return await self._write(
                "insert_artwork", self._post_artwork,
                self._artwork_insert_payload(record), retries=retries,
            )
        except Conflict:
            logger.info(
                "Insert conflict on %s, another writer won; updating its row",
                record.combined_hash[:12],
            )

        winner = await self._lookup_artwork_for_write(record.combined_hash)
        if winner is None or not winner.id:
            raise SaveFailed(
                f"conflict on {record.combined_hash[:12]} but existing row not found",
                status_code=409,
            )
        return await self._update_artwork(winner.id, record, retries)

    async def _update_artwork(
        self, artwork_id: str, record: ArtworkRecord, retries: int
    ) -> ArtworkRecord | None:
        try:
            return await self._write(
                "update_artwork", self._patch_artwork, artwork_id,
                self._artwork_update_payload(record), retries=retries,
            )
        except Conflict as e:
            raise SaveFailed("conflict on update", status_code=409, cause=e) from e

    async def increment_view_count(self, artwork_id: str) -> None:
        """Fire-and-forget counter bump. Every failure is swallowed."""
        if not self.is_configured or not artwork_id:
            return
        try:
            await self._send(
                "POST", INCREMENT_RPC, payload={"artwork_id": artwork_id},
                timeout=self._increment_timeout,
            )
        except Exception as e:  # noqa: BLE001
            logger.debug("View count increment for %s dropped: %s", artwork_id, e)

    # ------------------------------------------------------------------
    # Artists
    # ------------------------------------------------------------------

    def _best_artist_match(
        self, candidates: list[ArtistRecord], target_name: str
    ) -> tuple[ArtistRecord | None, float]:
        best: ArtistRecord | None = None
        best_score = 0.0
        for candidate in candidates:
            score = max(
                self._fingerprints.name_similarity(candidate.name, target_name),
                self._fingerprints.name_similarity(
                    candidate.normalized_name or candidate.name, target_name
                ),
            )
            if score > best_score:
                best, best_score = candidate, score
        return best, best_score

    async def _select_artists(
        self, params: dict[str, Any], timeout: float
    ) -> list[ArtistRecord]:
        rows = await self._select(ARTISTS_TABLE, params, timeout)
        return [ArtistRecord.model_validate(r) for r in rows]

    async def find_artist(
        self, name: str, retry_count: int | None = None
    ) -> ArtistRecord | None:
        """Exact name, then normalized name, then bounded fuzzy search.

        The fuzzy step only accepts a candidate whose similarity clears the
        threshold, unless artist_fuzzy_fallback is "first_candidate".
        """
        name = (name or "").strip()
        if not self.is_configured or not name:
            return None
        retries = self._read_retry_count if retry_count is None else retry_count
        normalized = self._fingerprints.normalize(name)
        config = self._retry_config(retries)

        steps: list[tuple[str, dict[str, Any], float]] = [
            ("artist_by_name", {"name": f"eq.{name}"}, self._read_timeout),
        ]
        if normalized:
            steps.append(
                ("artist_by_normalized_name", {"normalized_name": f"eq.{normalized}"}, self._read_timeout)
            )
        fuzzy_steps: list[tuple[str, dict[str, Any], float]] = [
            ("artist_fuzzy_name", {"name": f"ilike.{name}*", "limit": self._search_limit}, self._search_timeout),
        ]
        if normalized:
            fuzzy_steps.append(
                (
                    "artist_fuzzy_normalized",
                    {"normalized_name": f"ilike.{normalized}*", "limit": self._search_limit},
                    self._search_timeout,
                )
            )

        try:
            for operation, params, timeout in steps:
                found = await self._try_artist_step(operation, params, timeout, config)
                if found:
                    if len(found) == 1:
                        return found[0]
                    best, _ = self._best_artist_match(found, name)
                    return best or found[0]

            candidates: dict[str, ArtistRecord] = {}
            for operation, params, timeout in fuzzy_steps:
                for artist in await self._try_artist_step(operation, params, timeout, config):
                    candidates.setdefault(artist.id or artist.name, artist)
        except RetryExhausted as e:
            logger.warning(
                "Artist lookup for '%s': store unreachable after %d attempts (%s)",
                name, e.attempts, e.last_error,
            )
            return None
        except Unauthorized as e:
            logger.error("Artist lookup for '%s': store rejected the API key (%s)", name, e)
            return None

        if not candidates:
            return None

        pool = list(candidates.values())
        best, score = self._best_artist_match(pool, name)
        if best is not None and score >= self._fingerprints.threshold:
            logger.debug("Fuzzy artist match '%s' -> '%s' (%.2f)", name, best.name, score)
            return best

        if self._artist_fallback == "first_candidate":
            logger.warning(
                "No artist candidate for '%s' clears %.2f; falling back to '%s'",
                name, self._fingerprints.threshold, pool[0].name,
            )
            return pool[0]
        return None

    async def _try_artist_step(
        self,
        operation: str,
        params: dict[str, Any],
        timeout: float,
        config: RetryConfig,
    ) -> list[ArtistRecord]:
        """One lookup step; rejected requests count as an empty result."""
        try:
            return await with_retry(
                self._select_artists, params, timeout, operation=operation, config=config
            )
        except (RetryExhausted, Unauthorized):
            raise
        except CacheBackendError as e:
            logger.debug("%s rejected (%s), moving on", operation, e)
            return []

    async def _lookup_artist_for_write(self, name: str) -> ArtistRecord | None:
        """Single-attempt lookup through the same exact, normalized and fuzzy
        steps as find_artist, so a write lands on the row a read resolved to."""
        return await self.find_artist(name, retry_count=0)

    async def _patch_artist(self, artist_id: str, payload: dict[str, Any]) -> None:
        await self._send(
            "PATCH", ARTISTS_TABLE, params={"id": f"eq.{artist_id}"},
            payload=payload, timeout=self._write_timeout, representation=True,
        )

    async def _post_artist(self, payload: dict[str, Any]) -> None:
        await self._send(
            "POST", ARTISTS_TABLE, payload=payload,
            timeout=self._write_timeout, representation=True,
        )

    async def _update_artist_introduction(
        self,
        existing: ArtistRecord,
        introduction: str,
        normalized: str,
        overwrite: bool,
        retries: int,
    ) -> None:
        if existing.has_introduction and existing.introduction != introduction and not overwrite:
            logger.info(
                "Artist '%s' already has an introduction, keeping the stored one",
                existing.name,
            )
            return
        if not existing.id:
            raise SaveFailed(f"artist '{existing.name}' has no id to update")
        try:
            await self._write(
                "update_artist", self._patch_artist, existing.id,
                {
                    "artist_introduction": introduction,
                    "normalized_name": existing.normalized_name or normalized,
                },
                retries=retries,
            )
        except Conflict as e:
            raise SaveFailed("conflict on artist update", status_code=409, cause=e) from e

    async def upsert_artist_introduction(
        self,
        name: str,
        introduction: str,
        overwrite: bool = False,
        retry_count: int | None = None,
    ) -> None:
        """Backfill (or create) an artist's introduction.

        A different, already populated introduction is left alone unless
        overwrite is set.

        Raises:
            Unauthorized: Missing or rejected credential.
            SaveFailed: Retries exhausted, request rejected or conflict unresolved.
        """
        if not self.is_configured:
            raise Unauthorized("shared store is not configured")
        name = name.strip()
        if not name or not introduction.strip():
            raise SaveFailed("artist name and introduction are required")
        retries = self._write_retry_count if retry_count is None else retry_count
        normalized = self._fingerprints.normalize(name)

        existing = await self._lookup_artist_for_write(name)
        if existing is not None:
            await self._update_artist_introduction(
                existing, introduction, normalized, overwrite, retries
            )
            return

        payload = {
            "name": name,
            "normalized_name": normalized,
            "artist_introduction": introduction,
            "artworks_count": 1,
        }
        try:
            await self._write("insert_artist", self._post_artist, payload, retries=retries)
            logger.info("Created artist record '%s'", name)
            return
        except Conflict:
            logger.info("Insert conflict on artist '%s', updating the existing row", name)

        winner = await self._lookup_artist_for_write(name)
        if winner is None:
            raise SaveFailed(f"conflict on artist '{name}' but existing row not found", status_code=409)
        await self._update_artist_introduction(winner, introduction, normalized, overwrite, retries)
