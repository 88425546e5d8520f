# src/remote/client_factory.py — v1
"""Factory for shared-store client instantiation."""

from __future__ import annotations

import logging

import httpx

from artcache.cache.fingerprint import FingerprintGenerator
from artcache.config.settings import Settings
from artcache.remote.base_store import BaseRemoteStore

logger = logging.getLogger(__name__)


def create_remote_store(
    settings: Settings | None = None,
    fingerprints: FingerprintGenerator | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseRemoteStore:
    """Instantiate the shared-store client from settings.

    An unconfigured store is still returned: its reads miss and its writes
    raise Unauthorized, so callers run local-only without special-casing.

    Args:
        settings: Application settings. Defaults to an unconfigured store.
        fingerprints: Shared generator, so client and orchestrator agree on
            normalization and threshold.
        transport: Optional httpx transport override (tests, proxies).

    Returns:
        Configured BaseRemoteStore implementation.
    """
    from artcache.remote.rest_client import RestRemoteStore

    if settings is None:
        return RestRemoteStore("", "", fingerprints, transport=transport)

    if not settings.is_backend_configured:
        logger.warning("Shared store not configured, running with the local cache only")

    return RestRemoteStore(
        base_url=settings.rest_base_url if settings.is_backend_configured else "",
        api_key=settings.backend_api_key,
        fingerprints=fingerprints,
        read_timeout_s=settings.read_timeout_s,
        search_timeout_s=settings.search_timeout_s,
        write_timeout_s=settings.write_timeout_s,
        increment_timeout_s=settings.increment_timeout_s,
        read_retry_count=settings.read_retry_count,
        write_retry_count=settings.write_retry_count,
        retry_base_delay_s=settings.retry_base_delay_s,
        search_limit=settings.search_limit,
        artist_fuzzy_fallback=settings.artist_fuzzy_fallback,
        transport=transport,
    )
