# src/storage/layout.py
"""Data directory structure definition.

    <data_dir>/
        bundles/<rb_xxxxxxxx>/      committed bundles (one dir per bundle)
        tmp/upload_<token>/         staging areas, one per ingestion
        reprostore.db               sqlite repository

Bundle files: manifest.json, timing.json, inputs.json plus the artifacts
listed in the manifest.
"""

from __future__ import annotations

from pathlib import Path

BUNDLES_DIR = "bundles"
TMP_DIR = "tmp"
STAGING_PREFIX = "upload_"
DEFAULT_DB_FILENAME = "reprostore.db"

# Stream-ingestion sub-paths inside a staging dir
UPLOAD_ARCHIVE_NAME = "upload.zip"
EXTRACTED_DIR = "extracted"

# Well-known files inside a bundle directory
MANIFEST_FILENAME = "manifest.json"
TIMING_FILENAME = "timing.json"
INPUTS_FILENAME = "inputs.json"

# "rb_" + 8 hex chars
BUNDLE_DIR_NAME_LENGTH = 11

HEALTH_CHECK_FILENAME = ".health_check"


def bundles_dir(data_dir: Path) -> Path:
    return data_dir / BUNDLES_DIR


def tmp_dir(data_dir: Path) -> Path:
    return data_dir / TMP_DIR


def bundle_dir_name(bundle_id: str) -> str:
    """Directory name for a bundle: the id truncated to its fixed-length prefix."""
    return bundle_id[:BUNDLE_DIR_NAME_LENGTH]


def bundle_dir(data_dir: Path, bundle_id: str) -> Path:
    return bundles_dir(data_dir) / bundle_dir_name(bundle_id)


def staging_dir(data_dir: Path, token: str) -> Path:
    return tmp_dir(data_dir) / f"{STAGING_PREFIX}{token}"


def database_path(data_dir: Path, filename: str = DEFAULT_DB_FILENAME) -> Path:
    return data_dir / filename


def manifest_path(bundle_path: Path) -> Path:
    return bundle_path / MANIFEST_FILENAME


def timing_path(bundle_path: Path) -> Path:
    return bundle_path / TIMING_FILENAME


def inputs_path(bundle_path: Path) -> Path:
    return bundle_path / INPUTS_FILENAME


def ensure_data_directories(data_dir: Path) -> None:
    """Create the data root and its standard sub-directories."""
    for path in (data_dir, bundles_dir(data_dir), tmp_dir(data_dir)):
        path.mkdir(parents=True, exist_ok=True)
