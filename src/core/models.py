# src/core/models.py — v1
"""Core domain models shared by the fingerprint, remote and orchestrator layers.

Wire aliases follow the shared store's snake_case column names, so records
round-trip through ``model_validate`` / ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ArtworkFingerprint(BaseModel):
    """Normalized-text identity of an artwork, used as the cache key."""

    model_config = ConfigDict(frozen=True)

    normalized_title: str
    normalized_artist: str
    combined_hash: str
    year: str | None = None


def _lenient_datetime(value: object) -> object:
    """Unparsable store timestamps become None instead of failing the record."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


class ArtworkRecord(BaseModel):
    """Shared-store artwork entity (one per real-world artwork)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    combined_hash: str
    normalized_title: str = ""
    normalized_artist: str = ""

    # Display
    title: str
    artist: str
    year: str | None = None
    style: str | None = None
    medium: str | None = None
    museum: str | None = None
    image_url: str | None = None
    sources: list[str] = Field(default_factory=list)

    # Content
    narration: str = ""
    summary: str = ""

    # Quality / usage
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    recognized: bool = True
    view_count: int = Field(default=0, ge=0)
    last_viewed_at: datetime | None = None

    # Store-assigned
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("sources", mode="before")
    @classmethod
    def _none_sources(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("view_count", mode="before")
    @classmethod
    def _none_view_count(cls, v: object) -> object:
        return 0 if v is None else v

    @field_validator("narration", "summary", mode="before")
    @classmethod
    def _none_text(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("last_viewed_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: object) -> object:
        return _lenient_datetime(v)


class ArtistRecord(BaseModel):
    """Shared-store artist entity, independent of artworks."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    name: str
    normalized_name: str = ""
    introduction: str | None = Field(default=None, alias="artist_introduction")
    artworks_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("artworks_count", mode="before")
    @classmethod
    def _none_count(cls, v: object) -> object:
        return 0 if v is None else v

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: object) -> object:
        return _lenient_datetime(v)

    @property
    def has_introduction(self) -> bool:
        return bool(self.introduction and self.introduction.strip())


class LocalCacheEntry(BaseModel):
    """Device-local snapshot of a resolved artwork record."""

    fingerprint: ArtworkFingerprint
    record: ArtworkRecord
    cached_at: datetime


class NarrationCandidate(BaseModel):
    """Freshly generated content offered by the narration collaborator."""

    title: str
    artist: str
    year: str | None = None
    narration: str
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)  # None = unknown, never persisted
    summary: str = ""
    style: str | None = None
    medium: str | None = None
    museum: str | None = None
    image_url: str | None = None
    sources: list[str] = Field(default_factory=list)
    recognized: bool = True
    artist_introduction: str | None = None


ResolutionSource = Literal["local", "remote", "canonical", "candidate"]


class ResolvedArtwork(BaseModel):
    """Outbound shape returned to the application."""

    title: str
    artist: str
    year: str | None = None
    style: str | None = None
    medium: str | None = None
    museum: str | None = None
    image_url: str | None = None
    sources: list[str] = Field(default_factory=list)
    narration: str
    summary: str = ""
    confidence: float | None = 0.0
    artist_introduction: str | None = None
    combined_hash: str
    record_id: str | None = None
    source: ResolutionSource

    @classmethod
    def from_record(
        cls,
        record: ArtworkRecord,
        source: ResolutionSource,
        artist_introduction: str | None = None,
    ) -> ResolvedArtwork:
        return cls(
            title=record.title,
            artist=record.artist,
            year=record.year,
            style=record.style,
            medium=record.medium,
            museum=record.museum,
            image_url=record.image_url,
            sources=list(record.sources),
            narration=record.narration,
            summary=record.summary,
            confidence=record.confidence,
            artist_introduction=artist_introduction,
            combined_hash=record.combined_hash,
            record_id=record.id,
            source=source,
        )

    @classmethod
    def from_candidate(
        cls,
        candidate: NarrationCandidate,
        fingerprint: ArtworkFingerprint,
        record_id: str | None = None,
    ) -> ResolvedArtwork:
        return cls(
            title=candidate.title,
            artist=candidate.artist,
            year=candidate.year,
            style=candidate.style,
            medium=candidate.medium,
            museum=candidate.museum,
            image_url=candidate.image_url,
            sources=list(candidate.sources),
            narration=candidate.narration,
            summary=candidate.summary,
            confidence=candidate.confidence,
            artist_introduction=candidate.artist_introduction,
            combined_hash=fingerprint.combined_hash,
            record_id=record_id,
            source="candidate",
        )
