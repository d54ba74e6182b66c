# src/validation/engine.py
"""Cross-document consistency checks over a bundle directory.

Pure function of the directory contents: manifest.json is required,
timing.json and inputs.json are optional (their absence is a warning).
Findings are data, never exceptions. The only early exit is an unreadable
manifest, reported as a single MANIFEST_LOAD error.

Tolerances are fixed constants of the format, not configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path

from reprostore.logging.logger import get_logger
from reprostore.validation.documents import (
    DocumentLoadError,
    InputDocument,
    TimingDocument,
    ValidationManifest,
    load_inputs,
    load_manifest,
    load_timing,
)
from reprostore.validation.models import IssueCode, ValidationReport

MANIFEST_FPS_RANGE = (1.0, 240.0)
VIDEO_FPS_RANGE = (10.0, 120.0)
TIMING_NORMALIZED_MAX_FIRST_MS = 100.0
DURATION_TOLERANCE_SEC = 0.1
INPUT_RANGE_TOLERANCE_MS = 100.0

KEY_PREFIX = "Key"
MOUSE_PREFIX = "Mouse"
KEY_DOWN = "KeyDown"
KEY_UP = "KeyUp"


class ValidationEngine:
    """Validate a staged or committed bundle directory."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("validation.engine")

    def validate(self, bundle_dir: Path | str) -> ValidationReport:
        bundle_dir = Path(bundle_dir)
        report = ValidationReport()

        try:
            manifest = load_manifest(bundle_dir)
        except DocumentLoadError as exc:
            report.add_error(IssueCode.MANIFEST_LOAD, str(exc))
            self._logger.info("Validation of %s aborted: %s", bundle_dir, exc)
            return report

        timing: TimingDocument | None = None
        try:
            timing = load_timing(bundle_dir)
        except DocumentLoadError as exc:
            report.add_warning(IssueCode.TIMING_LOAD, str(exc))

        inputs: InputDocument | None = None
        try:
            inputs = load_inputs(bundle_dir)
        except DocumentLoadError as exc:
            report.add_warning(IssueCode.INPUTS_LOAD, str(exc))

        report.stats.manifest_duration_sec = manifest.duration_seconds
        report.stats.manifest_total_frames = manifest.total_frames

        self._check_manifest(report, manifest)
        if timing is not None:
            self._check_timing(report, timing)
            self._check_manifest_vs_timing(report, manifest, timing)
        if inputs is not None:
            self._check_inputs(report, inputs, manifest)

        self._logger.info(
            "Validated %s: valid=%s errors=%d warnings=%d",
            bundle_dir, report.valid, len(report.errors), len(report.warnings),
        )
        return report

    # --- Manifest ---

    @staticmethod
    def _check_manifest(report: ValidationReport, manifest: ValidationManifest) -> None:
        if manifest.duration_seconds <= 0:
            report.add_error(
                IssueCode.MANIFEST_DURATION,
                f"must be positive, got {manifest.duration_seconds:.3f}",
                field="durationSeconds",
            )
        if manifest.total_frames <= 0:
            report.add_error(
                IssueCode.MANIFEST_FRAMES,
                f"must be positive, got {manifest.total_frames}",
                field="totalFrames",
            )
        if manifest.duration_seconds > 0 and manifest.total_frames > 0:
            fps = manifest.video_fps
            low, high = MANIFEST_FPS_RANGE
            if fps < low or fps > high:
                report.add_warning(
                    IssueCode.MANIFEST_FPS,
                    f"unusual FPS: {fps:.1f} (frames={manifest.total_frames}, "
                    f"duration={manifest.duration_seconds:.2f}s)",
                )

    # --- Timing ---

    @staticmethod
    def _check_timing(report: ValidationReport, timing: TimingDocument) -> None:
        frames = timing.frames
        if not frames:
            report.add_error(IssueCode.TIMING_EMPTY, "no frames in timing.json", field="frames")
            return

        stats = report.stats
        stats.timing_frame_count = len(frames)
        stats.timing_first_timestamp_ms = frames[0].timestamp_ms
        stats.timing_last_timestamp_ms = frames[-1].timestamp_ms
        stats.timing_duration_ms = frames[-1].timestamp_ms - frames[0].timestamp_ms

        for position, frame in enumerate(frames):
            if frame.video_frame_index != position:
                report.add_error(
                    IssueCode.TIMING_INDEX_MISMATCH,
                    "videoFrameIndex should be sequential",
                    field="videoFrameIndex",
                    got=f"frame[{position}].videoFrameIndex = {frame.video_frame_index}",
                    want=str(position),
                )
                break

        if frames[0].timestamp_ms > TIMING_NORMALIZED_MAX_FIRST_MS:
            report.add_warning(
                IssueCode.TIMING_NOT_NORMALIZED,
                f"first frame timestamp is {frames[0].timestamp_ms:.1f}ms "
                "(expected near 0 if normalized)",
                field="timestampMs",
            )

        for position in range(1, len(frames)):
            previous, current = frames[position - 1].timestamp_ms, frames[position].timestamp_ms
            if current < previous:
                report.add_error(
                    IssueCode.TIMING_NON_MONOTONIC,
                    f"timestamp decreased at frame {position}: "
                    f"{previous:.1f}ms -> {current:.1f}ms",
                    field="timestampMs",
                )
                break

    @staticmethod
    def _check_manifest_vs_timing(
        report: ValidationReport, manifest: ValidationManifest, timing: TimingDocument
    ) -> None:
        frame_count = len(timing.frames)
        if manifest.total_frames != frame_count:
            report.add_error(
                IssueCode.FRAME_COUNT_MISMATCH,
                "manifest totalFrames should match timing.json frame count (1:1 with video)",
                field="totalFrames",
                got=str(manifest.total_frames),
                want=str(frame_count),
            )

        if manifest.duration_seconds > 0:
            fps = manifest.video_fps
            report.stats.video_fps = fps
            low, high = VIDEO_FPS_RANGE
            if fps < low or fps > high:
                report.add_warning(
                    IssueCode.VIDEO_FPS_UNUSUAL, f"video FPS ({fps:.1f}) seems unusual"
                )

        timing_duration_sec = report.stats.timing_duration_ms / 1000.0
        diff = abs(manifest.duration_seconds - timing_duration_sec)
        report.stats.duration_mismatch_ms = diff * 1000.0
        # compared at microsecond precision
        if round(diff, 6) > DURATION_TOLERANCE_SEC:
            report.add_warning(
                IssueCode.DURATION_MISMATCH,
                f"manifest duration differs from timing.json by {diff * 1000.0:.1f}ms",
                field="durationSeconds",
                got=f"{manifest.duration_seconds:.3f}s",
                want=f"{timing_duration_sec:.3f}s",
            )

    # --- Inputs ---

    @staticmethod
    def _check_inputs(
        report: ValidationReport, inputs: InputDocument, manifest: ValidationManifest
    ) -> None:
        events = inputs.events
        stats = report.stats
        stats.input_event_count = len(events)
        if not events:
            report.add_warning(IssueCode.INPUTS_EMPTY, "no input events recorded")
            return

        keyboard = mouse = 0
        open_keys: dict[str, float] = {}
        for event in events:
            if event.input_type.startswith(KEY_PREFIX):
                keyboard += 1
                if event.input_type == KEY_DOWN:
                    open_keys[event.key] = event.timestamp_ms
                elif event.input_type == KEY_UP:
                    open_keys.pop(event.key, None)
            elif event.input_type.startswith(MOUSE_PREFIX):
                mouse += 1

        timestamps = [e.timestamp_ms for e in events]
        stats.keyboard_event_count = keyboard
        stats.mouse_event_count = mouse
        stats.input_first_timestamp_ms = min(timestamps)
        stats.input_last_timestamp_ms = max(timestamps)

        duration_ms = manifest.duration_seconds * 1000.0
        upper = duration_ms + INPUT_RANGE_TOLERANCE_MS
        out_of_range = sum(1 for ts in timestamps if ts < 0 or ts > upper)
        if out_of_range:
            report.add_warning(
                IssueCode.INPUTS_OUT_OF_RANGE,
                f"{out_of_range} input events outside video duration [0, {duration_ms:.1f}ms]",
                field="timestampMs",
                details={"count": out_of_range},
            )

        if open_keys:
            keys = sorted(open_keys)
            report.add_warning(
                IssueCode.INPUTS_UNMATCHED_KEYDOWN,
                f"KeyDown without KeyUp: {', '.join(keys)}",
                details={"keys": keys},
            )


def validate_bundle(bundle_dir: Path | str) -> ValidationReport:
    """Validate ``bundle_dir`` with a default engine."""
    return ValidationEngine().validate(bundle_dir)
