# tests/unit/test_main.py — v2
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from artcache.api.service import ArtworkCacheService
from artcache.core.models import ArtistRecord, ArtworkRecord
from artcache.main import _build_parser, main
from artcache.remote.base_store import BaseRemoteStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOCAL_CACHE_ENABLED", "false")
    monkeypatch.delenv("BACKEND_API_URL", raising=False)
    monkeypatch.delenv("BACKEND_API_KEY", raising=False)


def _remote() -> AsyncMock:
    remote = AsyncMock(spec=BaseRemoteStore)
    remote.find_by_fingerprint.return_value = None
    remote.find_artist.return_value = None
    remote.search_near.return_value = []
    remote.upsert_artwork.return_value = None
    return remote


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_resolve_subcommand(self):
        args = _build_parser().parse_args(
            ["resolve", "--title", "Mona Lisa", "--artist", "Leonardo",
             "--narration", "text", "--confidence", "0.9"]
        )
        assert args.command == "resolve"
        assert args.title == "Mona Lisa"
        assert args.confidence == 0.9

    def test_artist_subcommand(self):
        args = _build_parser().parse_args(["artist", "Claude Monet", "--introduction", "bio"])
        assert args.name == "Claude Monet"
        assert args.introduction == "bio"

    def test_clear_local_subcommand(self):
        args = _build_parser().parse_args(["clear-local"])
        assert args.command == "clear-local"


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------

class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1

    def test_configuration_error(self, monkeypatch, capsys):
        monkeypatch.setenv("BACKEND_API_URL", "https://x.supabase.co")
        assert main(["clear-local"]) == 2
        assert "BACKEND_API_KEY" in capsys.readouterr().err

    def test_resolve_hit(self, capsys):
        remote = _remote()
        remote.find_by_fingerprint.return_value = ArtworkRecord(
            id="a1", combined_hash="h", title="Mona Lisa",
            artist="Leonardo da Vinci", narration="stored",
        )
        with patch("artcache.api.facade.build_service", return_value=ArtworkCacheService(remote)):
            code = main(["resolve", "--title", "Mona Lisa", "--artist", "Leonardo da Vinci"])
        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["narration"] == "stored"
        assert out["source"] == "remote"

    def test_resolve_miss(self, capsys):
        with patch("artcache.api.facade.build_service", return_value=ArtworkCacheService(_remote())):
            code = main(["resolve", "--title", "Mona Lisa", "--artist", "Leonardo"])
        assert code == 3
        assert json.loads(capsys.readouterr().out) == {"found": False}

    def test_resolve_narration_without_confidence_not_saved(self, capsys):
        remote = _remote()
        with patch("artcache.api.facade.build_service", return_value=ArtworkCacheService(remote)):
            code = main(["resolve", "--title", "T", "--artist", "A", "--narration", "n"])
        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["source"] == "candidate"
        assert out["narration"] == "n"
        remote.upsert_artwork.assert_not_called()

    def test_artist(self, capsys):
        remote = _remote()
        remote.find_artist.return_value = ArtistRecord(name="Claude Monet", introduction="French painter.")
        with patch("artcache.api.facade.build_service", return_value=ArtworkCacheService(remote)):
            code = main(["artist", "Claude Monet"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["introduction"] == "French painter."

    def test_clear_local(self, capsys):
        assert main(["clear-local"]) == 0
        assert "cleared" in capsys.readouterr().out
