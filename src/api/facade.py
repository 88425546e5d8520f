# src/api/facade.py — v2
"""Public API facade: wires settings into a ready-to-use cache service.

Usage:
    from artcache.api.facade import build_service
    async with build_service() as service:
        resolved = await service.resolve_narration("Mona Lisa", "Leonardo da Vinci")
"""

from __future__ import annotations

import logging

import httpx

from artcache.api.service import ArtworkCacheService
from artcache.cache.fingerprint import FingerprintGenerator
from artcache.cache.local_store import LocalEphemeralCache
from artcache.config.settings import Settings
from artcache.core.similarity import get_similarity_backend
from artcache.remote.client_factory import create_remote_store

logger = logging.getLogger(__name__)


def build_service(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ArtworkCacheService:
    """Construct generator, shared-store client, local cache and orchestrator.

    Args:
        settings: Global settings. Loaded from .env if None.
        transport: Optional httpx transport for the shared-store client.

    Returns:
        ArtworkCacheService owning its client; close it with ``aclose()``.

    Raises:
        ConfigurationError: If settings are internally inconsistent.
    """
    settings = settings or Settings()

    fingerprints = FingerprintGenerator(
        threshold=settings.similarity_threshold,
        string_similarity=get_similarity_backend(settings.similarity_backend),
    )
    remote = create_remote_store(settings, fingerprints, transport=transport)

    local_cache = None
    if settings.local_cache_enabled:
        local_cache = LocalEphemeralCache(
            capacity=settings.local_cache_capacity,
            ttl_hours=settings.local_cache_ttl_hours,
            path=settings.local_cache_path,
        )

    logger.debug(
        "Cache service ready: store=%s, local_cache=%s, threshold=%.2f",
        "configured" if remote.is_configured else "disabled",
        "on" if local_cache is not None else "off",
        settings.similarity_threshold,
    )
    return ArtworkCacheService(
        remote=remote,
        fingerprints=fingerprints,
        local_cache=local_cache,
        confidence_gate=settings.confidence_gate,
        unknown_artist_names=settings.unknown_artist_names_list,
    )
