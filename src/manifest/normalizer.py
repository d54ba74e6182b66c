# src/manifest/normalizer.py
"""Manifest parsing, artifact classification and canonical field derivation.

Derivation rules:
  - build id:   buildInfo.buildId, falling back to the top-level bundleId
  - platform:   hardwareInfo.platform, defaulting to "Other"
  - map name:   sessionInfo.mapName (optional)
  - timestamp:  reportTimestampUtc (Unix ms, UTC), defaulting to now

Only schema family 1 ("1" or "1.x") is accepted.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import TypeAdapter, ValidationError

from reprostore.core.errors import InvalidManifestError
from reprostore.core.models import ArtifactType
from reprostore.logging.logger import get_logger
from reprostore.manifest.models import (
    ArtifactEntry,
    ArtifactList,
    FilenameArtifactList,
    ManifestArtifact,
    ManifestDocument,
    NormalizedManifest,
    ObjectArtifactList,
)
from reprostore.storage.layout import manifest_path

DEFAULT_PLATFORM = "Other"
SUPPORTED_SCHEMA_MAJOR = "1"
DEFAULT_MIME_TYPE = "application/octet-stream"

_EXTENSION_TYPES: dict[str, ArtifactType] = {
    ".mp4": ArtifactType.VIDEO,
    ".webm": ArtifactType.VIDEO,
    ".txt": ArtifactType.LOG,
    ".log": ArtifactType.LOG,
    ".jpg": ArtifactType.SCREENSHOT,
    ".jpeg": ArtifactType.SCREENSHOT,
    ".png": ArtifactType.SCREENSHOT,
    ".dmp": ArtifactType.CRASH_DUMP,
    ".json": ArtifactType.OTHER,
}

_EXTENSION_MIME: dict[str, str] = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".json": "application/json",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".dmp": DEFAULT_MIME_TYPE,
}

_TYPE_ALIASES: dict[str, ArtifactType] = {
    "video": ArtifactType.VIDEO,
    "log": ArtifactType.LOG,
    "screenshot": ArtifactType.SCREENSHOT,
    "crash_dump": ArtifactType.CRASH_DUMP,
    "crashdump": ArtifactType.CRASH_DUMP,
    "dump": ArtifactType.CRASH_DUMP,
    "thumbnail": ArtifactType.THUMBNAIL,
    "thumb": ArtifactType.THUMBNAIL,
}

_OBJECT_LIST = TypeAdapter(list[ArtifactEntry])
_FILENAME_LIST = TypeAdapter(list[str])


# === CLASSIFICATION ===


def classify_filename(filename: str) -> ArtifactType:
    """Infer the artifact type from the file extension (case-insensitive)."""
    lowered = filename.lower()
    artifact_type = _EXTENSION_TYPES.get(PurePosixPath(lowered).suffix, ArtifactType.OTHER)
    if artifact_type is ArtifactType.SCREENSHOT and "thumbnail" in lowered:
        return ArtifactType.THUMBNAIL
    return artifact_type


def infer_mime_type(filename: str) -> str:
    return _EXTENSION_MIME.get(PurePosixPath(filename.lower()).suffix, DEFAULT_MIME_TYPE)


def normalize_artifact_type(declared: str) -> ArtifactType:
    """Map a declared manifest type onto the closed set (unknown → other)."""
    return _TYPE_ALIASES.get(declared.strip().lower(), ArtifactType.OTHER)


# === ARTIFACT LIST ===


def resolve_artifact_list(raw: Any) -> ArtifactList:
    """Decide which encoding the raw ``artifacts`` value uses.

    Object-array decoding is tried first, then the legacy string array.
    An absent or null list is an empty object list.

    Raises:
        InvalidManifestError: If neither encoding matches.
    """
    if raw is None:
        return ObjectArtifactList()
    try:
        return ObjectArtifactList(entries=_OBJECT_LIST.validate_python(raw))
    except ValidationError:
        pass
    try:
        return FilenameArtifactList(filenames=_FILENAME_LIST.validate_python(raw))
    except ValidationError as exc:
        raise InvalidManifestError(
            "artifacts must be a list of objects or a list of filenames",
            details={"field": "artifacts"},
        ) from exc


def resolve_artifacts(artifact_list: ArtifactList) -> tuple[ManifestArtifact, ...]:
    """Flatten either encoding into classified entries."""
    if isinstance(artifact_list, FilenameArtifactList):
        return tuple(
            ManifestArtifact(
                filename=name,
                artifact_type=classify_filename(name),
                mime_type=infer_mime_type(name),
            )
            for name in artifact_list.filenames
        )
    return tuple(
        ManifestArtifact(
            filename=entry.filename,
            artifact_type=(
                normalize_artifact_type(entry.type)
                if entry.type
                else classify_filename(entry.filename)
            ),
            mime_type=entry.mime_type or infer_mime_type(entry.filename),
        )
        for entry in artifact_list.entries
    )


# === NORMALIZER ===


def _timestamp_from_ms(value: int | None) -> datetime:
    if value is None or value <= 0:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _is_supported_schema(version: str) -> bool:
    return version == SUPPORTED_SCHEMA_MAJOR or version.startswith(f"{SUPPORTED_SCHEMA_MAJOR}.")


class ManifestNormalizer:
    """Parse a manifest document into a NormalizedManifest."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("manifest.normalizer")

    def load(self, bundle_dir: Path) -> NormalizedManifest:
        """Read ``manifest.json`` from a staged or committed bundle directory."""
        return self.parse_file(manifest_path(bundle_dir))

    def parse_file(self, path: Path) -> NormalizedManifest:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise InvalidManifestError(
                "manifest.json not found or unreadable", details={"path": str(path)}
            ) from exc
        return self.parse_bytes(data)

    def parse_bytes(self, data: bytes | str) -> NormalizedManifest:
        try:
            raw = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidManifestError(f"invalid JSON in manifest.json: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidManifestError("manifest.json must contain a JSON object")
        try:
            document = ManifestDocument.model_validate(raw)
        except ValidationError as exc:
            raise InvalidManifestError(
                f"invalid manifest.json: {exc.error_count()} field error(s)",
                details={"errors": [
                    {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in exc.errors()
                ]},
            ) from exc
        return self.normalize(document)

    def normalize(self, document: ManifestDocument) -> NormalizedManifest:
        """Validate a parsed document and derive the canonical fields.

        Raises:
            InvalidManifestError: Missing or unsupported schema version, or no
                resolvable build id.
        """
        schema_version = (document.schema_version or "").strip()
        if not schema_version:
            raise InvalidManifestError(
                "schemaVersion is required",
                details={"field": "schemaVersion", "reason": "required"},
            )
        if not _is_supported_schema(schema_version):
            raise InvalidManifestError(
                f"unsupported schemaVersion: {schema_version}",
                details={"field": "schemaVersion", "reason": "UNSUPPORTED_SCHEMA"},
            )

        build_info = document.build_info
        build_id = build_info.build_id if build_info else ""
        if not build_id:
            if not document.bundle_id:
                raise InvalidManifestError(
                    "buildId is required (in buildInfo or as bundleId)",
                    details={"field": "buildId", "reason": "required"},
                )
            self._logger.debug("No buildInfo.buildId, using bundleId %s", document.bundle_id)
            build_id = document.bundle_id

        hardware = document.hardware_info
        platform = hardware.platform if hardware and hardware.platform else DEFAULT_PLATFORM
        map_name = document.session_info.map_name if document.session_info else None

        artifact_list = resolve_artifact_list(document.artifacts)
        artifacts = resolve_artifacts(artifact_list)
        if isinstance(artifact_list, FilenameArtifactList):
            self._logger.debug("Manifest uses legacy filename artifact list")

        return NormalizedManifest(
            schema_version=schema_version,
            bundle_id_hint=document.bundle_id,
            build_id=build_id,
            map_name=map_name or None,
            platform=platform,
            harness_version=build_info.harness_version if build_info else None,
            timestamp=_timestamp_from_ms(document.report_timestamp_utc),
            metadata=document.metadata,
            artifact_list=artifact_list,
            artifacts=artifacts,
        )
