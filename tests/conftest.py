# tests/conftest.py
"""Shared test fixtures for all unit and integration tests.

Provides manifest/timing/input documents, a zip builder, bundle directories
on disk and a store + repository pair rooted in a temp directory.
"""

from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from reprostore.repository.memory_repository import InMemoryBundleRepository
from reprostore.storage.local_store import LocalBundleStore


# === FIXTURES: Documents ===


def _manifest(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "schemaVersion": "1.0",
        "bundleId": "harness-bundle-001",
        "reportTimestampUtc": 1767225600000,  # 2026-01-01T00:00:00Z
        "buildInfo": {
            "buildId": "build-4521",
            "branch": "main",
            "harnessVersion": "2.3.0",
        },
        "sessionInfo": {"mapName": "Highlands", "targetFps": 60},
        "hardwareInfo": {"platform": "Win64", "gpuBrand": "TestGPU"},
        "durationSeconds": 10.0,
        "totalFrames": 300,
        "artifacts": [
            {"filename": "capture.mp4", "type": "video", "mimeType": "video/mp4"},
            {"filename": "game.log", "type": "log", "mimeType": "text/plain"},
        ],
    }
    doc.update(overrides)
    return doc


def _timing(count: int = 300, step_ms: float = 1000.0 / 30.0) -> dict[str, Any]:
    return {
        "schemaVersion": "1",
        "frames": [
            {"videoFrameIndex": i, "timestampMs": round(i * step_ms, 3)}
            for i in range(count)
        ],
    }


def _inputs(events: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    if events is None:
        events = [
            {"timestampMs": 0.0, "inputType": "KeyDown", "keyName": "W"},
            {"timestampMs": 500.0, "inputType": "KeyUp", "keyName": "W"},
            {"timestampMs": 750.0, "inputType": "MouseButtonDown", "keyName": "Left"},
            {"timestampMs": 800.0, "inputType": "MouseButtonUp", "keyName": "Left"},
        ]
    return {"schemaVersion": "1", "totalEvents": len(events), "events": events}


@pytest.fixture
def manifest_factory() -> Callable[..., dict[str, Any]]:
    """Build a manifest dict; keyword overrides replace top-level fields."""
    return _manifest


@pytest.fixture
def timing_factory() -> Callable[..., dict[str, Any]]:
    return _timing


@pytest.fixture
def inputs_factory() -> Callable[..., dict[str, Any]]:
    return _inputs


@pytest.fixture
def sample_manifest() -> dict[str, Any]:
    return _manifest()


# === FIXTURES: Bundle files ===


def _default_files(manifest: dict[str, Any] | None = None) -> dict[str, bytes]:
    """Complete, consistent bundle: 10s, 300 frames @ 30 FPS."""
    return {
        "manifest.json": json.dumps(manifest or _manifest()).encode(),
        "timing.json": json.dumps(_timing(300, step_ms=10000.0 / 299)).encode(),
        "inputs.json": json.dumps(_inputs()).encode(),
        "capture.mp4": b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64,
        "game.log": b"[0.000] session start\n[9.990] session end\n",
    }


def build_zip_bytes(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture
def bundle_files() -> dict[str, bytes]:
    return _default_files()


@pytest.fixture
def bundle_files_factory() -> Callable[..., dict[str, bytes]]:
    return _default_files


@pytest.fixture
def zip_builder(tmp_path: Path) -> Callable[..., Path]:
    """Write a zip archive under tmp_path and return its path."""
    counter = {"n": 0}

    def _build(files: dict[str, bytes], name: str | None = None) -> Path:
        counter["n"] += 1
        path = tmp_path / (name or f"bundle_{counter['n']}.zip")
        path.write_bytes(build_zip_bytes(files))
        return path

    return _build


@pytest.fixture
def zip_bytes_builder() -> Callable[[dict[str, bytes]], bytes]:
    return build_zip_bytes


@pytest.fixture
def bundle_dir_builder(tmp_path: Path) -> Callable[..., Path]:
    """Write documents into a fresh directory; ``None`` leaves a file out."""
    counter = {"n": 0}

    def _build(
        manifest: dict[str, Any] | str | None = None,
        timing: dict[str, Any] | str | None = None,
        inputs: dict[str, Any] | str | None = None,
    ) -> Path:
        counter["n"] += 1
        path = tmp_path / f"dir_{counter['n']}"
        path.mkdir()
        for name, doc in (
            ("manifest.json", manifest),
            ("timing.json", timing),
            ("inputs.json", inputs),
        ):
            if doc is None:
                continue
            text = doc if isinstance(doc, str) else json.dumps(doc)
            (path / name).write_text(text, encoding="utf-8")
        return path

    return _build


# === FIXTURES: Store + repository ===


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> LocalBundleStore:
    return LocalBundleStore(data_dir)


@pytest.fixture
def memory_repo() -> InMemoryBundleRepository:
    return InMemoryBundleRepository()
