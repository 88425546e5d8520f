# src/cache/local_store.py — v1
"""Device-local ephemeral cache of recently resolved artwork records.

Entries are kept most-recent-first. Capacity overflow evicts the oldest
insertion; entries older than the TTL read as a miss. When a path is given
the collection is persisted as a single JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from artcache.core.models import ArtworkFingerprint, ArtworkRecord, LocalCacheEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LocalEphemeralCache:
    """Bounded, time-limited store owned by the orchestrator."""

    def __init__(
        self,
        capacity: int = 20,
        ttl_hours: float = 24.0,
        path: Path | str | None = None,
        clock: Clock | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl_hours <= 0:
            raise ValueError("ttl_hours must be > 0")
        self._capacity = capacity
        self._ttl = timedelta(hours=ttl_hours)
        self._path = Path(path).expanduser() if path is not None else None
        self._clock = clock or _utcnow
        self._entries: list[LocalCacheEntry] = self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def _now(self) -> datetime:
        return _as_utc(self._clock())

    def _is_expired(self, entry: LocalCacheEntry) -> bool:
        return self._now() - _as_utc(entry.cached_at) > self._ttl

    def get(self, fingerprint: ArtworkFingerprint) -> ArtworkRecord | None:
        """Return the cached record for this fingerprint, None if absent or expired."""
        for entry in self._entries:
            if entry.fingerprint.combined_hash != fingerprint.combined_hash:
                continue
            if self._is_expired(entry):
                logger.debug("Local cache entry %s expired", fingerprint.combined_hash[:12])
                return None
            return entry.record
        return None

    def put(self, fingerprint: ArtworkFingerprint, record: ArtworkRecord) -> None:
        """Insert at the front, replacing any entry with the same hash."""
        self._entries = [
            e for e in self._entries
            if e.fingerprint.combined_hash != fingerprint.combined_hash
        ]
        self._entries.insert(
            0,
            LocalCacheEntry(fingerprint=fingerprint, record=record, cached_at=self._now()),
        )
        if len(self._entries) > self._capacity:
            del self._entries[self._capacity:]
        self._save()

    def remove(self, fingerprint: ArtworkFingerprint) -> None:
        before = len(self._entries)
        self._entries = [
            e for e in self._entries
            if e.fingerprint.combined_hash != fingerprint.combined_hash
        ]
        if len(self._entries) != before:
            self._save()

    def clear(self) -> None:
        self._entries = []
        if self._path is not None:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to delete local cache file %s: %s", self._path, e)
        logger.info("Local cache cleared")

    def entries(self) -> list[LocalCacheEntry]:
        """Snapshot of the stored entries, most recent first, expired ones included."""
        return list(self._entries)

    # --- Persistence ---

    def _load(self) -> list[LocalCacheEntry]:
        if self._path is None or not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable local cache %s: %s", self._path, e)
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed local cache %s", self._path)
            return []

        entries: list[LocalCacheEntry] = []
        for item in raw:
            try:
                entries.append(LocalCacheEntry.model_validate(item))
            except ValidationError:
                continue
        return entries[: self._capacity]

    def _save(self) -> None:
        if self._path is None:
            return
        payload = [e.model_dump(mode="json") for e in self._entries]
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            logger.warning("Failed to persist local cache to %s: %s", self._path, e)
