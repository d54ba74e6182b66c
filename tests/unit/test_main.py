# tests/unit/test_main.py
"""Tests for main.py: CLI entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from reprostore.logging.logger import ROOT_LOGGER_NAME
from reprostore.main import _build_parser, main


@pytest.fixture(autouse=True)
def _isolate(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("REPROSTORE_DATA_DIR", raising=False)
    monkeypatch.delenv("REPROSTORE_REPOSITORY_BACKEND", raising=False)
    yield
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


@pytest.fixture
def cli(tmp_path, capsys):
    data_dir = tmp_path / "data"

    def _run(*argv: str) -> tuple[int, str, str]:
        code = main(["--data-dir", str(data_dir), *argv])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_ingest(self):
        args = _build_parser().parse_args(["ingest", "b.zip", "--json"])
        assert args.file == Path("b.zip")
        assert args.json is True

    def test_list_defaults(self):
        args = _build_parser().parse_args(["list"])
        assert (args.build, args.map_name, args.platform) == (None, None, None)
        assert (args.limit, args.offset) == (50, 0)

    def test_note_requires_author(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["note", "rb_1", "text"])

    def test_no_command(self, capsys):
        assert main([]) == 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestCommands:
    def test_ingest_then_dedup(self, cli, zip_builder, bundle_files):
        archive = zip_builder(bundle_files)
        code, out, _ = cli("ingest", str(archive), "--json")
        assert code == 0
        first = json.loads(out)
        assert first["status"] == "ingested"

        code, out, _ = cli("ingest", str(archive))
        assert code == 0
        assert "already_exists" in out
        assert first["bundle_id"] in out

    def test_ingest_missing_file(self, cli, tmp_path):
        code, _, err = cli("ingest", str(tmp_path / "nope.zip"))
        assert code == 1
        assert "file not found" in err

    def test_ingest_invalid_manifest(self, cli, zip_builder):
        code, _, err = cli("ingest", str(zip_builder({"capture.mp4": b"\x00"})))
        assert code == 1
        assert "INVALID_MANIFEST: manifest.json not found or unreadable" in err

    def test_inspect_tag_note_list(self, cli, zip_builder, bundle_files):
        _, out, _ = cli("ingest", str(zip_builder(bundle_files)), "--json")
        bundle_id = json.loads(out)["bundle_id"]

        assert cli("tag", bundle_id, "perf")[1].strip() == f"{bundle_id}: perf"
        code, out, _ = cli("note", bundle_id, "--author", "qa", "hitch at 4s")
        assert code == 0
        assert out.startswith("note_")

        code, out, _ = cli("inspect", bundle_id, "--json")
        detail = json.loads(out)
        assert detail["tags"] == ["perf"]
        assert detail["notes"][0]["content"] == "hitch at 4s"
        assert len(detail["artifacts"]) == 2

        code, out, _ = cli("inspect", bundle_id)
        assert "Artifacts (2):" in out
        assert "Tags:      perf" in out

        code, out, _ = cli("list", "--platform", "Win64", "--json")
        assert [b["bundle_id"] for b in json.loads(out)["bundles"]] == [bundle_id]
        code, out, _ = cli("list", "--map", "Nowhere")
        assert "No bundles found." in out

    def test_inspect_unknown(self, cli):
        code, _, err = cli("inspect", "rb_ffffffff")
        assert code == 1
        assert "BUNDLE_NOT_FOUND: bundle not found: rb_ffffffff" in err

    def test_validate_directory(self, cli, bundle_dir_builder, sample_manifest,
                                timing_factory, inputs_factory):
        path = bundle_dir_builder(sample_manifest, timing_factory(300, 10000.0 / 299), inputs_factory())
        code, out, _ = cli("validate", str(path), "--summary")
        assert code == 0
        assert out.startswith("✓ Bundle is VALID")
        assert "=== Key Presses (1) ===" in out

    def test_validate_invalid_exits_1_with_report(self, cli, bundle_dir_builder):
        manifest = {"schemaVersion": "1", "durationSeconds": 0.3, "totalFrames": 10}
        timing = {"frames": [{"videoFrameIndex": i, "timestampMs": i * 37.5} for i in range(9)]}
        code, out, _ = cli("validate", str(bundle_dir_builder(manifest, timing)), "--json")
        assert code == 1
        payload = json.loads(out)
        assert payload["valid"] is False
        assert payload["errors"][0]["code"] == "FRAME_COUNT_MISMATCH"

    def test_validate_invalid_still_summarizes(self, cli, bundle_dir_builder, inputs_factory):
        manifest = {"schemaVersion": "1", "durationSeconds": 0.3, "totalFrames": 10}
        timing = {"frames": [{"videoFrameIndex": i, "timestampMs": i * 37.5} for i in range(9)]}
        inputs = inputs_factory([
            {"timestampMs": 0, "inputType": "KeyDown", "keyName": "W"},
            {"timestampMs": 200, "inputType": "KeyUp", "keyName": "W"},
        ])
        path = bundle_dir_builder(manifest, timing, inputs)

        code, out, _ = cli("validate", str(path), "--summary")
        assert code == 1
        assert out.startswith("✗ Bundle is INVALID")
        assert "=== Key Presses (1) ===" in out
        assert "W (held 200ms)" in out

        code, out, _ = cli("validate", str(path), "--summary", "--json")
        assert code == 1
        payload = json.loads(out)
        assert payload["valid"] is False
        assert payload["summary"]["keyPresses"][0]["key"] == "W"

    def test_validate_summary_without_manifest(self, cli, bundle_dir_builder):
        code, out, err = cli("validate", str(bundle_dir_builder(None)), "--summary")
        assert code == 1
        assert out == ""
        assert "INVALID_MANIFEST:" in err

    def test_validate_directory_leaves_data_dir_untouched(
        self, cli, tmp_path, bundle_dir_builder, sample_manifest
    ):
        cli("validate", str(bundle_dir_builder(sample_manifest)))
        assert not (tmp_path / "data").exists()

    def test_validate_unknown_bundle_id(self, cli):
        code, _, err = cli("validate", "rb_ffffffff")
        assert code == 1
        assert "BUNDLE_NOT_FOUND" in err

    def test_validate_stored_bundle(self, cli, zip_builder, bundle_files):
        _, out, _ = cli("ingest", str(zip_builder(bundle_files)), "--json")
        code, out, _ = cli("validate", json.loads(out)["bundle_id"])
        assert code == 0

    def test_sweep(self, cli):
        code, out, _ = cli("sweep", "--max-age-hours", "1")
        assert code == 0
        assert out.strip() == "Removed 0 stale staging directories"
