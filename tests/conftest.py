# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides an in-memory PostgREST emulation served through httpx.MockTransport,
so the real HTTP client runs end to end without a network.
"""

from __future__ import annotations

import asyncio
import json
import re
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from artcache.api.service import ArtworkCacheService
from artcache.cache.fingerprint import FingerprintGenerator
from artcache.cache.local_store import LocalEphemeralCache
from artcache.core.models import NarrationCandidate
from artcache.remote.rest_client import RestRemoteStore

STORE_URL = "https://store.test/rest/v1"
STORE_KEY = "test-key"

_UNIQUE = {"artworks": "combined_hash", "artists": "name"}
_RESERVED_PARAMS = {"select", "limit", "order"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ilike(pattern: str) -> re.Pattern[str]:
    parts = re.split(r"[*%]", pattern)
    return re.compile(".*".join(re.escape(p) for p in parts), re.IGNORECASE | re.DOTALL)


class FakePostgrest:
    """Minimal PostgREST: eq/ilike filters, limit, unique keys, one RPC."""

    def __init__(self, api_key: str = STORE_KEY) -> None:
        self.api_key = api_key
        self.tables: dict[str, list[dict[str, Any]]] = {"artworks": [], "artists": []}
        self.requests: list[httpx.Request] = []
        self.write_log: list[tuple[str, str, dict[str, Any]]] = []
        self._failures: list[tuple[str | None, int | Exception]] = []
        self._race_rows: list[dict[str, Any]] = []

    @property
    def artworks(self) -> list[dict[str, Any]]:
        return self.tables["artworks"]

    @property
    def artists(self) -> list[dict[str, Any]]:
        return self.tables["artists"]

    # --- Scenario helpers ---

    def fail_next(
        self,
        count: int,
        failure: int | type[Exception] = httpx.ConnectError,
        method: str | None = None,
    ) -> None:
        """Make the next ``count`` requests (optionally of one method) fail.

        ``failure`` is an HTTP status code or a transport exception class.
        """
        for _ in range(count):
            injected = failure if isinstance(failure, int) else failure("injected")
            self._failures.append((method, injected))

    def race_insert(self, row: dict[str, Any]) -> None:
        """Insert ``row`` just before the next POST is handled (a concurrent writer)."""
        self._race_rows.append(row)

    def add_artwork(self, **fields: Any) -> dict[str, Any]:
        return self._insert("artworks", fields)

    def add_artist(self, **fields: Any) -> dict[str, Any]:
        return self._insert("artists", fields)

    def methods(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path.rsplit("/rest/v1/", 1)[-1]) for r in self.requests]

    # --- Transport ---

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        await asyncio.sleep(0)

        failure = self._take_failure(request.method)
        if failure is not None:
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure, json={"message": "injected failure"})

        if request.headers.get("apikey") != self.api_key:
            return httpx.Response(401, json={"message": "Invalid API key"})

        resource = request.url.path.rsplit("/rest/v1/", 1)[-1]
        if resource == "rpc/increment_artwork_view_count":
            return self._increment(json.loads(request.content))
        if resource not in self.tables:
            return httpx.Response(404, json={"message": f"unknown relation {resource}"})

        filters = [
            (k, v) for k, v in request.url.params.multi_items()
            if k not in _RESERVED_PARAMS
        ]
        if request.method == "GET":
            rows = [r for r in self.tables[resource] if self._matches(r, filters)]
            limit = request.url.params.get("limit")
            if limit is not None:
                rows = rows[: int(limit)]
            return httpx.Response(200, json=rows)
        if request.method == "POST":
            if self._race_rows:
                self._insert(resource, self._race_rows.pop(0))
            return self._post(resource, json.loads(request.content))
        if request.method == "PATCH":
            return self._patch(resource, filters, json.loads(request.content))
        return httpx.Response(405)

    # --- Internals ---

    def _take_failure(self, method: str) -> int | Exception | None:
        for index, (wanted, failure) in enumerate(self._failures):
            if wanted is None or wanted == method:
                del self._failures[index]
                return failure
        return None

    @staticmethod
    def _matches(row: dict[str, Any], filters: list[tuple[str, str]]) -> bool:
        for column, expr in filters:
            op, _, value = expr.partition(".")
            cell = row.get(column)
            if op == "eq" and str(cell) != value:
                return False
            if op == "ilike" and (cell is None or not _ilike(value).fullmatch(str(cell))):
                return False
        return True

    def _insert(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        row: dict[str, Any] = {"id": str(uuid.uuid4()), "created_at": _now(), "updated_at": _now()}
        if table == "artworks":
            row.update({"view_count": 0, "last_viewed_at": None, "sources": []})
        else:
            row.update({"artworks_count": 0, "artist_introduction": None})
        row.update(fields)
        self.tables[table].append(row)
        return row

    def _post(self, table: str, body: dict[str, Any]) -> httpx.Response:
        key = _UNIQUE[table]
        if any(r.get(key) == body.get(key) for r in self.tables[table]):
            return httpx.Response(
                409, json={"code": "23505", "message": f"duplicate key value violates unique constraint on {key}"}
            )
        row = self._insert(table, body)
        self.write_log.append(("POST", table, body))
        return httpx.Response(201, json=[row])

    def _patch(
        self, table: str, filters: list[tuple[str, str]], body: dict[str, Any]
    ) -> httpx.Response:
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(body)
                row["updated_at"] = _now()
                updated.append(row)
        self.write_log.append(("PATCH", table, body))
        return httpx.Response(200, json=updated)

    def _increment(self, body: dict[str, Any]) -> httpx.Response:
        for row in self.artworks:
            if row["id"] == body.get("artwork_id"):
                row["view_count"] += 1
                row["last_viewed_at"] = _now()
        return httpx.Response(204)


# === FIXTURES ===


@pytest.fixture
def fake_store() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
def fingerprints() -> FingerprintGenerator:
    return FingerprintGenerator()


@pytest.fixture
def make_remote(fake_store: FakePostgrest, fingerprints: FingerprintGenerator):
    """Factory for REST clients against the fake store; zero retry delay by default."""

    def _make(api_key: str = STORE_KEY, **kwargs: Any) -> RestRemoteStore:
        kwargs.setdefault("retry_base_delay_s", 0.0)
        return RestRemoteStore(
            STORE_URL, api_key, fingerprints, transport=fake_store.transport(), **kwargs
        )

    return _make


@pytest.fixture
def remote_store(make_remote) -> RestRemoteStore:
    return make_remote()


@pytest.fixture
def service(remote_store: RestRemoteStore, fingerprints: FingerprintGenerator) -> ArtworkCacheService:
    """Orchestrator with the fake store and no local cache."""
    return ArtworkCacheService(remote=remote_store, fingerprints=fingerprints)


@pytest.fixture
def cached_service(
    remote_store: RestRemoteStore, fingerprints: FingerprintGenerator
) -> ArtworkCacheService:
    """Orchestrator with the fake store and an in-memory local cache."""
    return ArtworkCacheService(
        remote=remote_store,
        fingerprints=fingerprints,
        local_cache=LocalEphemeralCache(capacity=20, ttl_hours=24),
    )


@pytest.fixture
def mona_lisa_candidate() -> NarrationCandidate:
    return NarrationCandidate(
        title="Mona Lisa",
        artist="Leonardo da Vinci",
        year="1503",
        narration="A half-length portrait painted in oil on a poplar panel.",
        summary="Portrait of Lisa Gherardini.",
        confidence=0.9,
        museum="Louvre",
        sources=["https://www.louvre.fr"],
    )
