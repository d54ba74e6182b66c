# tests/unit/ingest/test_unit_extractor.py
"""Tests for ingest/extractor.py: zip extraction and multi-file staging."""

from __future__ import annotations

import stat
import zipfile

import pytest

from reprostore.core.errors import InvalidArchiveError
from reprostore.ingest.extractor import BundleExtractor, sanitize_member_name


@pytest.fixture
def extractor() -> BundleExtractor:
    return BundleExtractor()


@pytest.fixture
def dest(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


def _zip(path, entries: dict[str, bytes]):
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


class TestSanitize:
    @pytest.mark.parametrize("raw,expected", [
        ("manifest.json", "manifest.json"),
        ("../../etc/passwd", "passwd"),
        ("logs/game.log", "game.log"),
        ("logs\\game.log", "game.log"),
        ("/abs/file.mp4", "file.mp4"),
    ])
    def test_flattens(self, raw, expected):
        assert sanitize_member_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "..", "../", "dir/.."])
    def test_rejects_empty_result(self, raw):
        with pytest.raises(InvalidArchiveError):
            sanitize_member_name(raw)


class TestExtractArchive:
    def test_extracts_nested(self, extractor, tmp_path, dest):
        archive = _zip(tmp_path / "a.zip", {
            "manifest.json": b"{}",
            "logs/game.log": b"line\n",
        })
        written = extractor.extract_archive(archive, dest)
        assert (dest / "manifest.json").read_bytes() == b"{}"
        assert (dest / "logs" / "game.log").read_bytes() == b"line\n"
        assert len(written) == 2

    def test_directory_entries(self, extractor, tmp_path, dest):
        archive = tmp_path / "d.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(zipfile.ZipInfo("screens/"), b"")
            zf.writestr("screens/shot.png", b"png")
        extractor.extract_archive(archive, dest)
        assert (dest / "screens").is_dir()
        assert (dest / "screens" / "shot.png").is_file()

    @pytest.mark.parametrize("name", ["../../etc/passwd", "/etc/passwd", "a/../../x", "C:/evil"])
    def test_rejects_unsafe_entries(self, extractor, tmp_path, dest, name):
        archive = _zip(tmp_path / "evil.zip", {"manifest.json": b"{}", name: b"root"})
        with pytest.raises(InvalidArchiveError, match="invalid file path"):
            extractor.extract_archive(archive, dest)
        # nothing from the archive is written, including the safe entry
        assert list(dest.iterdir()) == []
        assert not (tmp_path / "etc").exists()

    def test_corrupt_archive(self, extractor, tmp_path, dest):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"PK\x03\x04 definitely not a zip")
        with pytest.raises(InvalidArchiveError, match="failed to extract"):
            extractor.extract_archive(archive, dest)

    def test_preserves_declared_mode(self, extractor, tmp_path, dest):
        archive = tmp_path / "m.zip"
        info = zipfile.ZipInfo("run.sh")
        info.external_attr = (stat.S_IFREG | 0o750) << 16
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(info, b"#!/bin/sh\n")
        extractor.extract_archive(archive, dest)
        assert stat.S_IMODE((dest / "run.sh").stat().st_mode) == 0o750


class TestWriteFileSet:
    def test_flat_layout(self, extractor, dest):
        extractor.write_file_set({"manifest.json": b"{}", "capture.mp4": b"\x00"}, dest)
        assert sorted(p.name for p in dest.iterdir()) == ["capture.mp4", "manifest.json"]

    def test_traversal_is_flattened(self, extractor, dest, tmp_path):
        extractor.write_file_set({"../../etc/passwd": b"root:x"}, dest)
        assert (dest / "passwd").read_bytes() == b"root:x"
        assert not (tmp_path / "etc").exists()

    def test_collision_after_flattening(self, extractor, dest):
        with pytest.raises(InvalidArchiveError, match="duplicate file name"):
            extractor.write_file_set({"a/game.log": b"1", "b/game.log": b"2"}, dest)
