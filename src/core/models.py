# src/core/models.py
"""Shared Pydantic domain models used across modules.

Bundles, artifacts, QA notes and the list/ingest result shapes. Manifest and
validation documents live in their own packages.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === ARTIFACTS ===


class ArtifactType(str, Enum):
    """Closed set of artifact classifications."""

    VIDEO = "video"
    LOG = "log"
    SCREENSHOT = "screenshot"
    CRASH_DUMP = "crash_dump"
    THUMBNAIL = "thumbnail"
    OTHER = "other"


class Artifact(BaseModel):
    """One file inside a bundle. Created once at commit, never mutated."""

    artifact_id: str
    bundle_id: str
    filename: str
    artifact_type: ArtifactType
    mime_type: str = ""
    size_bytes: int = 0
    storage_path: str
    checksum: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("filename", "storage_path")
    @classmethod
    def validate_relative_name(cls, v: str) -> str:  # noqa: N805
        """Artifact paths are relative to the bundle directory, never escaping it."""
        if not v or v.startswith(("/", "\\")) or ".." in v.replace("\\", "/").split("/"):
            raise ValueError(f"invalid artifact path: {v!r}")
        return v


# === QA NOTES ===


class QANote(BaseModel):
    """Free-form note left on a bundle by a tester."""

    note_id: str
    bundle_id: str
    author: str
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


# === BUNDLES ===


class Bundle(BaseModel):
    """Content-addressed collection of artifacts.

    ``content_hash`` is the deduplication key and is unique across the
    repository. ``storage_path`` is relative to the data root.
    """

    bundle_id: str
    content_hash: str
    schema_version: str
    build_id: str
    map_name: str | None = None
    platform: str
    harness_version: str | None = None
    bundle_timestamp: datetime
    metadata: Any = None
    size_bytes: int = 0
    artifact_count: int = 0
    storage_path: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    # Populated on detail queries only
    artifacts: list[Artifact] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: list[QANote] = Field(default_factory=list)

    @field_validator("content_hash")
    @classmethod
    def validate_content_hash(cls, v: str) -> str:  # noqa: N805
        algo, sep, digest = v.partition(":")
        if algo != "sha256" or not sep or len(digest) != 64:
            raise ValueError(f"content_hash must be 'sha256:<64 hex>', got {v!r}")
        return v


# === QUERIES & RESULTS ===


DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


class BundleListQuery(BaseModel):
    """Filters for listing bundles. Empty filters match everything."""

    build_id: str | None = None
    map_name: str | None = None
    platform: str | None = None
    since: datetime | None = None
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0

    @field_validator("since")
    @classmethod
    def validate_since(cls, v: datetime | None) -> datetime | None:  # noqa: N805
        """Naive datetimes are taken as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def effective_limit(self) -> int:
        """Limit with defaults applied (<=0 → default, capped at MAX_LIST_LIMIT)."""
        if self.limit <= 0:
            return DEFAULT_LIST_LIMIT
        return min(self.limit, MAX_LIST_LIMIT)

    @property
    def effective_offset(self) -> int:
        return max(self.offset, 0)


class BundleListResult(BaseModel):
    bundles: list[Bundle] = Field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0


class IngestResult(BaseModel):
    """Outcome of an ingestion. ``already_exists`` is a success, not an error."""

    bundle_id: str
    status: Literal["ingested", "already_exists"]
    artifact_count: int
    created_at: datetime = Field(default_factory=_utcnow)
