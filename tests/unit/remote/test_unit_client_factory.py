# tests/unit/remote/test_client_factory.py — v1
"""Tests for remote/client_factory.py."""

from __future__ import annotations

from artcache.cache.fingerprint import FingerprintGenerator
from artcache.config.settings import Settings
from artcache.remote.client_factory import create_remote_store
from artcache.remote.rest_client import RestRemoteStore


class TestCreateRemoteStore:
    def test_default_unconfigured(self):
        store = create_remote_store()
        assert isinstance(store, RestRemoteStore)
        assert store.is_configured is False

    def test_unconfigured_settings(self):
        store = create_remote_store(Settings(_env_file=None))
        assert store.is_configured is False

    def test_configured_settings(self):
        s = Settings(
            _env_file=None,
            backend_api_url="https://x.supabase.co",
            backend_api_key="k",
            write_retry_count=4,
            artist_fuzzy_fallback="first_candidate",
        )
        store = create_remote_store(s)
        assert store.is_configured is True
        assert store._base_url == "https://x.supabase.co/rest/v1"
        assert store._write_retry_count == 4
        assert store._artist_fallback == "first_candidate"

    def test_shares_generator(self):
        gen = FingerprintGenerator(threshold=0.9)
        store = create_remote_store(Settings(_env_file=None), gen)
        assert store._fingerprints is gen
