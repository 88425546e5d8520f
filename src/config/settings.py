# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for the shared-store endpoint, retry and timeout
policy, dedup thresholds and the local cache bounds.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Shared store ===
    backend_api_url: str = ""
    backend_api_key: str = ""
    backend_rest_prefix: str = "/rest/v1"

    # Timeouts (seconds)
    read_timeout_s: float = 8.0
    search_timeout_s: float = 6.0
    write_timeout_s: float = 10.0
    increment_timeout_s: float = 5.0

    # Retry policy
    read_retry_count: int = 1
    write_retry_count: int = 2
    retry_base_delay_s: float = 1.0

    # === Dedup ===
    similarity_threshold: float = 0.85
    similarity_backend: Literal["levenshtein", "token_sort"] = "levenshtein"
    confidence_gate: float = 0.8
    search_limit: int = 5
    artist_fuzzy_fallback: Literal["none", "first_candidate"] = "none"
    unknown_artist_names: str = "未知艺术家,unknown artist,unknown"

    # === Local cache ===
    local_cache_enabled: bool = True
    local_cache_capacity: int = 20
    local_cache_ttl_hours: float = 24.0
    local_cache_path: Path | None = Path("~/.artcache/local_cache.json")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("similarity_threshold", "confidence_gate")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        """Thresholds are probabilities."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        return v

    @field_validator("read_retry_count", "write_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry count must be >= 0")
        return v

    @field_validator("local_cache_capacity", "search_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("backend_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.backend_api_url and not self.backend_api_key:
            errors.append("BACKEND_API_URL is set but BACKEND_API_KEY is empty")

        if self.backend_api_key and not self.backend_api_url:
            errors.append("BACKEND_API_KEY is set but BACKEND_API_URL is empty")

        if self.backend_api_url and not self.backend_api_url.startswith(
            ("http://", "https://")
        ):
            errors.append("BACKEND_API_URL must be an http(s) URL")

        if self.local_cache_ttl_hours <= 0:
            errors.append("LOCAL_CACHE_TTL_HOURS must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def is_backend_configured(self) -> bool:
        """True when both endpoint and key are present."""
        return bool(self.backend_api_url and self.backend_api_key)

    @property
    def rest_base_url(self) -> str:
        """Root URL of the REST tables, e.g. https://x.supabase.co/rest/v1."""
        return f"{self.backend_api_url}{self.backend_rest_prefix}"

    @property
    def unknown_artist_names_list(self) -> list[str]:
        """Parse comma-separated placeholder artist names (casefolded)."""
        return [
            n.strip().casefold()
            for n in self.unknown_artist_names.split(",")
            if n.strip()
        ]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-call config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
