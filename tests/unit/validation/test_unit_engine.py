# tests/unit/validation/test_unit_engine.py
"""Tests for validation/engine.py: cross-document consistency checks."""

from __future__ import annotations

import json

import pytest

from reprostore.validation.engine import ValidationEngine, validate_bundle
from reprostore.validation.models import IssueCode


@pytest.fixture
def engine() -> ValidationEngine:
    return ValidationEngine()


def _frames(*stamps: float, indices: list[int] | None = None) -> dict:
    indices = indices if indices is not None else list(range(len(stamps)))
    return {"frames": [
        {"videoFrameIndex": i, "timestampMs": ts} for i, ts in zip(indices, stamps)
    ]}


def _manifest(duration: float, frames: int) -> dict:
    return {"schemaVersion": "1", "durationSeconds": duration, "totalFrames": frames}


def _evenly(count: int, duration_ms: float) -> dict:
    step = duration_ms / (count - 1)
    return _frames(*(i * step for i in range(count)))


class TestDocuments:
    def test_consistent_bundle_is_valid(self, engine, bundle_dir_builder, sample_manifest,
                                        timing_factory, inputs_factory):
        path = bundle_dir_builder(sample_manifest, timing_factory(300, 10000.0 / 299), inputs_factory())
        report = engine.validate(path)
        assert report.valid
        assert report.errors == []
        assert report.warnings == []
        assert report.stats.timing_frame_count == 300
        assert report.stats.video_fps == pytest.approx(30.0)
        assert report.stats.input_event_count == 4
        assert report.stats.keyboard_event_count == 2
        assert report.stats.mouse_event_count == 2

    def test_missing_manifest_is_single_error(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(None, _frames(0.0), {"events": []}))
        assert not report.valid
        assert report.codes() == ["MANIFEST_LOAD"]

    def test_unparseable_manifest(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder("{broken"))
        assert report.codes() == ["MANIFEST_LOAD"]

    def test_missing_companions_are_warnings(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(10.0, 300)))
        assert report.valid
        assert report.codes() == ["TIMING_LOAD", "INPUTS_LOAD"]

    def test_validate_bundle_helper(self, bundle_dir_builder):
        assert validate_bundle(bundle_dir_builder(_manifest(1.0, 30))).valid


class TestManifestChecks:
    def test_non_positive_values(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(0, 0)))
        assert {"MANIFEST_DURATION", "MANIFEST_FRAMES"} <= set(report.codes())
        assert not report.valid

    def test_unusual_manifest_fps(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 500)))
        assert "MANIFEST_FPS" in [w.code.value for w in report.warnings]
        assert report.valid


class TestTimingChecks:
    def test_empty_frames_still_cross_checked(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 30), {"frames": []}))
        assert [e.code for e in report.errors] == [
            IssueCode.TIMING_EMPTY,
            IssueCode.FRAME_COUNT_MISMATCH,
        ]
        mismatch = report.errors[1]
        assert (mismatch.got, mismatch.want) == ("30", "0")
        duration = [w for w in report.warnings if w.code is IssueCode.DURATION_MISMATCH]
        assert [(w.got, w.want) for w in duration] == [("1.000s", "0.000s")]
        assert report.stats.video_fps == pytest.approx(30.0)

    def test_non_monotonic_reported_once(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(
            _manifest(0.04, 3), _frames(0.0, 50.0, 40.0), {"events": [{"timestampMs": 0}]},
        ))
        codes = [e.code for e in report.errors]
        assert codes.count(IssueCode.TIMING_NON_MONOTONIC) == 1
        assert IssueCode.FRAME_COUNT_MISMATCH not in codes
        assert "frame 2" in report.errors[0].message

    def test_index_mismatch_reported_once(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(
            _manifest(0.1, 4), _frames(0, 33, 66, 100, indices=[0, 2, 3, 5]),
        ))
        mismatches = [e for e in report.errors if e.code is IssueCode.TIMING_INDEX_MISMATCH]
        assert len(mismatches) == 1
        assert mismatches[0].got == "frame[1].videoFrameIndex = 2"
        assert mismatches[0].want == "1"

    def test_not_normalized(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(0.1, 2), _frames(5000.0, 5100.0)))
        assert "TIMING_NOT_NORMALIZED" in report.codes()
        assert report.valid


class TestManifestVsTiming:
    def test_frame_count_mismatch(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(0.3, 10), _evenly(9, 300.0)))
        mismatch = next(e for e in report.errors if e.code is IssueCode.FRAME_COUNT_MISMATCH)
        assert (mismatch.got, mismatch.want) == ("10", "9")
        assert mismatch.field == "totalFrames"
        assert not report.valid

    @pytest.mark.parametrize("manifest_duration,expected", [
        (10.09, 0),
        (10.1, 0),
        (10.11, 1),
        (9.85, 1),
    ])
    def test_duration_tolerance(self, engine, bundle_dir_builder, manifest_duration, expected):
        report = engine.validate(bundle_dir_builder(
            _manifest(manifest_duration, 301), _evenly(301, 10000.0),
        ))
        warnings = [w for w in report.warnings if w.code is IssueCode.DURATION_MISMATCH]
        assert len(warnings) == expected
        assert report.valid

    def test_unusual_video_fps(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 5), _evenly(5, 1000.0)))
        assert "VIDEO_FPS_UNUSUAL" in report.codes()
        assert report.stats.video_fps == pytest.approx(5.0)


class TestInputChecks:
    def test_empty_events(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 30), None, {"events": []}))
        assert "INPUTS_EMPTY" in report.codes()

    def test_out_of_range(self, engine, bundle_dir_builder):
        events = [
            {"timestampMs": -5, "inputType": "MouseMove"},
            {"timestampMs": 500, "inputType": "KeyDown", "keyName": "W"},
            {"timestampMs": 1050, "inputType": "KeyUp", "keyName": "W"},
            {"timestampMs": 1200, "inputType": "MouseMove"},
        ]
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 30), None, {"events": events}))
        warning = next(w for w in report.warnings if w.code is IssueCode.INPUTS_OUT_OF_RANGE)
        assert warning.details == {"count": 2}
        assert report.stats.input_first_timestamp_ms == -5
        assert report.stats.input_last_timestamp_ms == 1200

    def test_unmatched_keydown(self, engine, bundle_dir_builder):
        events = [
            {"timestampMs": 0, "inputType": "KeyDown", "keyName": "W"},
            {"timestampMs": 100, "inputType": "KeyDown", "keyName": "A"},
            {"timestampMs": 500, "inputType": "KeyUp", "keyName": "W"},
        ]
        report = engine.validate(bundle_dir_builder(_manifest(1.0, 30), None, {"events": events}))
        warning = next(w for w in report.warnings if w.code is IssueCode.INPUTS_UNMATCHED_KEYDOWN)
        assert warning.details == {"keys": ["A"]}
        assert warning.message == "KeyDown without KeyUp: A"
        assert report.valid


class TestReportSerialization:
    def test_camel_case_json(self, engine, bundle_dir_builder):
        report = engine.validate(bundle_dir_builder(_manifest(0.3, 10), _evenly(9, 300.0)))
        payload = json.loads(report.to_json())
        assert payload["valid"] is False
        assert payload["stats"]["timingFrameCount"] == 9
        assert payload["errors"][0]["code"] == "FRAME_COUNT_MISMATCH"
        assert "details" not in payload["errors"][0]
