# src/validation/models.py
"""Validation report and session summary models.

Both are transient: computed on demand from a bundle directory, never
persisted. JSON output uses camelCase keys.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IssueCode(str, Enum):
    """Stable codes of validation findings."""

    MANIFEST_LOAD = "MANIFEST_LOAD"
    TIMING_LOAD = "TIMING_LOAD"
    INPUTS_LOAD = "INPUTS_LOAD"
    MANIFEST_DURATION = "MANIFEST_DURATION"
    MANIFEST_FRAMES = "MANIFEST_FRAMES"
    MANIFEST_FPS = "MANIFEST_FPS"
    TIMING_EMPTY = "TIMING_EMPTY"
    TIMING_INDEX_MISMATCH = "TIMING_INDEX_MISMATCH"
    TIMING_NOT_NORMALIZED = "TIMING_NOT_NORMALIZED"
    TIMING_NON_MONOTONIC = "TIMING_NON_MONOTONIC"
    FRAME_COUNT_MISMATCH = "FRAME_COUNT_MISMATCH"
    VIDEO_FPS_UNUSUAL = "VIDEO_FPS_UNUSUAL"
    DURATION_MISMATCH = "DURATION_MISMATCH"
    INPUTS_EMPTY = "INPUTS_EMPTY"
    INPUTS_OUT_OF_RANGE = "INPUTS_OUT_OF_RANGE"
    INPUTS_UNMATCHED_KEYDOWN = "INPUTS_UNMATCHED_KEYDOWN"


class ValidationIssue(_CamelModel):
    code: IssueCode
    message: str
    field: str | None = None
    got: str | None = None
    want: str | None = None
    details: dict[str, Any] | None = None


class BundleStats(_CamelModel):
    # manifest
    manifest_duration_sec: float = 0.0
    manifest_total_frames: int = 0

    # timing.json (1:1 with video frames)
    timing_frame_count: int = 0
    timing_first_timestamp_ms: float = 0.0
    timing_last_timestamp_ms: float = 0.0
    timing_duration_ms: float = 0.0

    # inputs.json
    input_event_count: int = 0
    keyboard_event_count: int = 0
    mouse_event_count: int = 0
    input_first_timestamp_ms: float = 0.0
    input_last_timestamp_ms: float = 0.0

    # derived
    video_fps: float = 0.0
    duration_mismatch_ms: float = 0.0


class ValidationReport(_CamelModel):
    """Errors invalidate the bundle; warnings never do."""

    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    stats: BundleStats = Field(default_factory=BundleStats)

    def add_error(self, code: IssueCode, message: str, **extra: Any) -> None:
        self.errors.append(ValidationIssue(code=code, message=message, **extra))
        self.valid = False

    def add_warning(self, code: IssueCode, message: str, **extra: Any) -> None:
        self.warnings.append(ValidationIssue(code=code, message=message, **extra))

    def codes(self) -> list[str]:
        """Codes of all findings, errors first (handy for assertions and logs)."""
        return [i.code.value for i in (*self.errors, *self.warnings)]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class KeyPress(_CamelModel):
    """One key-hold interval.

    ``start_ms`` is None when the key was already held as capture began
    (duration then counts from 0). ``end_ms`` is None when the key was still
    held at capture end.
    """

    key: str
    start_ms: float | None = None
    end_ms: float | None = None
    duration_ms: float | None = None

    @property
    def held_from_start(self) -> bool:
        return self.start_ms is None

    @property
    def held_at_end(self) -> bool:
        return self.end_ms is None


class MouseClick(_CamelModel):
    button: str
    timestamp_ms: float


class BundleSummary(_CamelModel):
    bundle_id: str = ""
    map_name: str | None = None
    duration_seconds: float = 0.0
    video_frames: int = 0
    video_fps: float = 0.0
    key_presses: list[KeyPress] = Field(default_factory=list)
    mouse_clicks: list[MouseClick] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
