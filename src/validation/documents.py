# src/validation/documents.py
"""Companion documents read by the validator: manifest, timing and inputs.

These models are deliberately lenient: absent fields take zero values so
that the consistency checks, not the parser, report what is wrong.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reprostore.storage.layout import inputs_path, manifest_path, timing_path


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SessionSummary(_Document):
    map_name: str | None = Field(default=None, alias="mapName")
    target_fps: float | None = Field(default=None, alias="targetFps")


class ValidationManifest(_Document):
    """The subset of manifest.json the consistency checks need."""

    schema_version: str | None = Field(default=None, alias="schemaVersion")
    bundle_id: str | None = Field(default=None, alias="bundleId")
    duration_seconds: float = Field(default=0.0, alias="durationSeconds")
    total_frames: int = Field(default=0, alias="totalFrames")
    session_info: SessionSummary | None = Field(default=None, alias="sessionInfo")

    @property
    def map_name(self) -> str | None:
        return self.session_info.map_name if self.session_info else None

    @property
    def video_fps(self) -> float:
        """Manifest frames / duration (0 when the duration is not positive)."""
        if self.duration_seconds <= 0:
            return 0.0
        return self.total_frames / self.duration_seconds


class FrameEntry(_Document):
    video_frame_index: int = Field(default=0, alias="videoFrameIndex")
    timestamp_ms: float = Field(default=0.0, alias="timestampMs")
    is_paused: bool = Field(default=False, alias="isPaused")


class TimingDocument(_Document):
    schema_version: str | None = Field(default=None, alias="schemaVersion")
    frames: list[FrameEntry] = Field(default_factory=list)


class InputEvent(_Document):
    timestamp_ms: float = Field(default=0.0, alias="timestampMs")
    input_type: str = Field(default="", alias="inputType")
    key_name: str | None = Field(default=None, alias="keyName")
    key_code: int | None = Field(default=None, alias="keyCode")

    @property
    def key(self) -> str:
        return self.key_name or ""


class InputDocument(_Document):
    schema_version: str | None = Field(default=None, alias="schemaVersion")
    total_events: int = Field(default=0, alias="totalEvents")
    events: list[InputEvent] = Field(default_factory=list)


class DocumentLoadError(Exception):
    """A companion document is missing or does not parse."""


_D = TypeVar("_D", bound=BaseModel)


def _load(path: Path, model: type[_D]) -> _D:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise DocumentLoadError(f"read {path.name}: {exc.strerror or exc}") from exc
    try:
        return model.model_validate(json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        raise DocumentLoadError(f"parse {path.name}: {exc}") from exc


def load_manifest(bundle_dir: Path) -> ValidationManifest:
    return _load(manifest_path(bundle_dir), ValidationManifest)


def load_timing(bundle_dir: Path) -> TimingDocument:
    return _load(timing_path(bundle_dir), TimingDocument)


def load_inputs(bundle_dir: Path) -> InputDocument:
    return _load(inputs_path(bundle_dir), InputDocument)
