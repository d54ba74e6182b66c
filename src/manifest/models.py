# src/manifest/models.py
"""Manifest document models.

The manifest is the harness-produced ``manifest.json``. Field names on the
wire are camelCase; models accept both the wire names and snake_case.

The ``artifacts`` field has two historical encodings, modeled as a sum type:
  - ObjectArtifactList:   [{"filename": ..., "type": ..., "mimeType": ...}]
  - FilenameArtifactList: ["capture.mp4", "game.log"]   (legacy)
Both resolve to the same tuple of ManifestArtifact.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from reprostore.core.models import ArtifactType


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# === NESTED RECORDS ===


class BuildInfo(_WireModel):
    build_id: str = Field(default="", alias="buildId")
    commit_hash: str | None = Field(default=None, alias="commitHash")
    branch: str | None = None
    build_config: str | None = Field(default=None, alias="buildConfig")
    engine_version: str | None = Field(default=None, alias="engineVersion")
    project_name: str | None = Field(default=None, alias="projectName")
    project_version: str | None = Field(default=None, alias="projectVersion")
    harness_version: str | None = Field(
        default=None,
        validation_alias=AliasChoices("harnessVersion", "rvrVersion", "harness_version"),
    )


class SessionInfo(_WireModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    map_name: str | None = Field(default=None, alias="mapName")
    game_mode_name: str | None = Field(default=None, alias="gameModeName")
    tester_name: str | None = Field(default=None, alias="testerName")
    test_case_name: str | None = Field(default=None, alias="testCaseName")


class HardwareInfo(_WireModel):
    platform: str = ""
    os_version: str | None = Field(default=None, alias="osVersion")
    cpu_brand: str | None = Field(default=None, alias="cpuBrand")
    gpu_brand: str | None = Field(default=None, alias="gpuBrand")
    rhi_name: str | None = Field(default=None, alias="rhiName")
    device_id: str | None = Field(default=None, alias="deviceId")


# === ARTIFACT LIST (sum type) ===


class ManifestArtifact(BaseModel):
    """Resolved artifact entry: classification is always populated."""

    model_config = ConfigDict(frozen=True)

    filename: str
    artifact_type: ArtifactType
    mime_type: str


class ArtifactEntry(_WireModel):
    """One element of the object-array encoding."""

    filename: str = Field(min_length=1)
    type: str | None = None
    mime_type: str | None = Field(
        default=None, validation_alias=AliasChoices("mimeType", "mime_type")
    )


class ObjectArtifactList(BaseModel):
    kind: Literal["objects"] = "objects"
    entries: list[ArtifactEntry] = Field(default_factory=list)


class FilenameArtifactList(BaseModel):
    kind: Literal["filenames"] = "filenames"
    filenames: list[str] = Field(default_factory=list)


ArtifactList = Annotated[
    ObjectArtifactList | FilenameArtifactList, Field(discriminator="kind")
]


# === DOCUMENT ===


class ManifestDocument(_WireModel):
    """Raw manifest.json as produced by the harness.

    Only the fields ingestion derives from are typed. Capture figures
    (``durationSeconds``, ``totalFrames``, ``targetFps``) stay in the extra
    fields and are checked by the validation engine, never here.
    """

    schema_version: str | None = Field(default=None, alias="schemaVersion")
    bundle_id: str | None = Field(default=None, alias="bundleId")
    content_hash: str | None = Field(default=None, alias="contentHash")
    report_timestamp_utc: int | None = Field(default=None, alias="reportTimestampUtc")
    notes: Any = None
    build_info: BuildInfo | None = Field(default=None, alias="buildInfo")
    session_info: SessionInfo | None = Field(default=None, alias="sessionInfo")
    hardware_info: HardwareInfo | None = Field(default=None, alias="hardwareInfo")
    artifacts: Any = None
    # free-form blob, stored as given
    metadata: Any = None


class NormalizedManifest(BaseModel):
    """Canonical bundle metadata derived from a validated manifest."""

    schema_version: str
    bundle_id_hint: str | None = None
    build_id: str
    map_name: str | None = None
    platform: str
    harness_version: str | None = None
    timestamp: datetime
    metadata: Any = None
    artifact_list: ArtifactList
    artifacts: tuple[ManifestArtifact, ...] = ()

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts)
