# tests/integration/api/test_int_cache_flow.py — v1
"""Integration tests: several devices sharing one store through build_service.

No external services required; the store is the in-memory PostgREST fake.
Coverage targets: facade.py, service.py, rest_client.py, local_store.py
"""

from __future__ import annotations

import asyncio

import pytest

from artcache.api.facade import build_service
from artcache.config.settings import Settings
from artcache.core.models import NarrationCandidate


def _device(tmp_path, name: str) -> Settings:
    return Settings(
        _env_file=None,
        backend_api_url="https://store.test",
        backend_api_key="test-key",
        retry_base_delay_s=0.0,
        local_cache_path=tmp_path / name / "local_cache.json",
    )


def _starry_night(narration: str, confidence: float = 0.92, intro: str | None = None):
    return NarrationCandidate(
        title="The Starry Night",
        artist="Vincent van Gogh",
        year="1889",
        narration=narration,
        confidence=confidence,
        museum="MoMA",
        artist_introduction=intro,
    )


class TestSharedStore:
    @pytest.mark.asyncio
    async def test_second_device_reuses_first_devices_narration(self, tmp_path, fake_store):
        transport = fake_store.transport()
        async with build_service(_device(tmp_path, "a"), transport) as device_a:
            await device_a.resolve_narration(
                "The Starry Night", "Vincent van Gogh", "1889",
                candidate=_starry_night("Swirling night sky.", intro="Dutch painter."),
            )

        async with build_service(_device(tmp_path, "b"), transport) as device_b:
            resolved = await device_b.resolve_with_artist_introduction(
                "starry night!!", "vincent van gogh",
                candidate=_starry_night("A different take."),
                candidate_introduction="Another biography.",
            )

        assert resolved.source == "remote"
        assert resolved.narration == "Swirling night sky."
        assert resolved.artist_introduction == "Dutch painter."
        assert len(fake_store.artworks) == 1
        assert fake_store.artworks[0]["view_count"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_devices_converge_on_one_record(self, tmp_path, fake_store):
        transport = fake_store.transport()
        device_a = build_service(_device(tmp_path, "a"), transport)
        device_b = build_service(_device(tmp_path, "b"), transport)

        results = await asyncio.gather(
            device_a.resolve_narration(
                "The Starry Night", "Vincent van Gogh", candidate=_starry_night("From A."),
            ),
            device_b.resolve_narration(
                "The Starry Night", "Vincent van Gogh", candidate=_starry_night("From B."),
            ),
        )
        await device_a.aclose()
        await device_b.aclose()

        assert all(r is not None for r in results)
        assert len(fake_store.artworks) == 1
        assert fake_store.artworks[0]["narration"] == fake_store.write_log[-1][2]["narration"]

    @pytest.mark.asyncio
    async def test_low_confidence_stays_on_device(self, tmp_path, fake_store):
        transport = fake_store.transport()
        async with build_service(_device(tmp_path, "a"), transport) as device_a:
            shown = await device_a.resolve_narration(
                "The Starry Night", "Vincent van Gogh",
                candidate=_starry_night("Unsure.", confidence=0.6),
            )
        async with build_service(_device(tmp_path, "b"), transport) as device_b:
            later = await device_b.resolve_narration("The Starry Night", "Vincent van Gogh")

        assert shown.narration == "Unsure."
        assert later is None
        assert fake_store.artworks == []

    @pytest.mark.asyncio
    async def test_local_cache_survives_restart(self, tmp_path, fake_store):
        transport = fake_store.transport()
        async with build_service(_device(tmp_path, "a"), transport) as device:
            await device.resolve_narration(
                "The Starry Night", "Vincent van Gogh", candidate=_starry_night("Cached."),
            )

        fake_store.fail_next(100)
        async with build_service(_device(tmp_path, "a"), transport) as restarted:
            resolved = await restarted.resolve_narration("The Starry Night", "Vincent van Gogh")

        assert resolved.source == "local"
        assert resolved.narration == "Cached."
