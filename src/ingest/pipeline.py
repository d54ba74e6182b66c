# src/ingest/pipeline.py
"""Ingestion pipeline: stage → hash → manifest → dedup → commit → register.

States of one ingestion:

    STAGED ──► DISCARDED                      (error, or content already known)
       └─────► COMMITTED ──► ARTIFACTS_REGISTERED

The staging directory is removed in a ``finally`` block, so it never
outlives the call: success, ``already_exists``, exceptions and task
cancellation all release it. Commit is a single rename performed by the
bundle store. After commit, per-artifact registration is lenient: a failing
artifact row is logged and skipped, the bundle stays committed.

Deduplication: the lookup by content hash is a fast path only. The
repository's uniqueness constraint decides races; the loser removes its own
committed directory and reports the winner's bundle as ``already_exists``.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError

from reprostore.core.errors import (
    ContentHashConflictError,
    InvalidArchiveError,
    ReproStoreError,
    StorageError,
)
from reprostore.core.ids import (
    UPLOAD_PREFIX,
    generate_artifact_id,
    generate_bundle_id,
    generate_upload_token,
)
from reprostore.core.models import Artifact, Bundle, IngestResult
from reprostore.ingest.content_hasher import hash_blobs, hash_file, hash_stream_to_file
from reprostore.ingest.extractor import BundleExtractor
from reprostore.logging.context import (
    clear_context,
    set_bundle_context,
    set_ingest_context,
    set_stage,
)
from reprostore.logging.logger import get_logger
from reprostore.manifest.models import ManifestArtifact, NormalizedManifest
from reprostore.manifest.normalizer import ManifestNormalizer
from reprostore.repository.base_repository import BaseBundleRepository
from reprostore.storage.base_bundle_store import BaseBundleStore
from reprostore.storage.layout import EXTRACTED_DIR, UPLOAD_ARCHIVE_NAME

# stage(staging_root) -> (content_hash, directory holding the bundle files)
StageFn = Callable[[Path], tuple[str, Path]]


class IngestState(str, Enum):
    STAGED = "staged"
    DISCARDED = "discarded"
    COMMITTED = "committed"
    ARTIFACTS_REGISTERED = "artifacts_registered"


class IngestionPipeline:
    """Orchestrates one bundle ingestion end to end."""

    def __init__(
        self,
        store: BaseBundleStore,
        repository: BaseBundleRepository,
        extractor: BundleExtractor | None = None,
        normalizer: ManifestNormalizer | None = None,
        logger: logging.Logger | None = None,
        max_upload_bytes: int | None = None,
    ) -> None:
        self._store = store
        self._repository = repository
        self._logger = logger or get_logger("ingest.pipeline")
        self._extractor = extractor or BundleExtractor()
        self._normalizer = normalizer or ManifestNormalizer()
        self._max_upload_bytes = max_upload_bytes

    # --- Entry points ---

    async def ingest_archive_file(self, archive_path: Path | str) -> IngestResult:
        """Ingest a zip archive already on disk (hashes the file itself)."""
        archive = Path(archive_path)

        def stage(staging: Path) -> tuple[str, Path]:
            try:
                content_hash = hash_file(archive)
            except OSError as exc:
                raise InvalidArchiveError(
                    f"failed to hash archive: {exc}", details={"path": str(archive)}
                ) from exc
            self._extractor.extract_archive(archive, staging)
            return content_hash, staging

        return await self._ingest(stage)

    async def ingest_stream(self, reader: BinaryIO) -> IngestResult:
        """Ingest a zip upload stream, hashing it while it is persisted."""

        def stage(staging: Path) -> tuple[str, Path]:
            upload = staging / UPLOAD_ARCHIVE_NAME
            content_hash, written = hash_stream_to_file(reader, upload, self._max_upload_bytes)
            self._logger.debug("Received upload of %d bytes", written)
            extracted = staging / EXTRACTED_DIR
            extracted.mkdir()
            self._extractor.extract_archive(upload, extracted)
            upload.unlink()
            return content_hash, extracted

        return await self._ingest(stage)

    async def ingest_archive_bytes(self, data: bytes) -> IngestResult:
        return await self.ingest_stream(io.BytesIO(data))

    async def ingest_files(self, files: Mapping[str, bytes]) -> IngestResult:
        """Ingest a set of individually uploaded files (flat bundle)."""
        if self._max_upload_bytes is not None:
            total = sum(len(data) for data in files.values())
            if total > self._max_upload_bytes:
                raise InvalidArchiveError(
                    f"upload exceeds maximum size of {self._max_upload_bytes} bytes",
                    details={"max_bytes": self._max_upload_bytes},
                )

        def stage(staging: Path) -> tuple[str, Path]:
            self._extractor.write_file_set(files, staging)
            return hash_blobs(files), staging

        return await self._ingest(stage)

    # --- Protocol ---

    async def _ingest(self, stage: StageFn) -> IngestResult:
        token = generate_upload_token()
        set_ingest_context(f"{UPLOAD_PREFIX}_{token}")
        try:
            staging = self._store.create_staging_dir(token)
        except ReproStoreError:
            clear_context()
            raise
        state = IngestState.STAGED
        self._logger.info("Ingestion %s", state.value)
        try:
            set_stage("extract")
            content_hash, bundle_dir = stage(staging)

            set_stage("manifest")
            manifest = self._normalizer.load(bundle_dir)

            set_stage("dedup")
            existing = await self._repository.get_bundle_by_hash(content_hash)
            if existing is not None:
                state = IngestState.DISCARDED
                self._logger.info(
                    "Ingestion %s: content %s already stored as %s",
                    state.value, content_hash, existing.bundle_id,
                )
                return IngestResult(
                    bundle_id=existing.bundle_id,
                    status="already_exists",
                    artifact_count=manifest.artifact_count,
                )

            set_stage("commit")
            bundle_id = generate_bundle_id()
            set_bundle_context(bundle_id)
            size_bytes = self._store.dir_size(bundle_dir)
            storage_path = self._store.commit_to_permanent(bundle_dir, bundle_id)
            state = IngestState.COMMITTED
            self._logger.info("Ingestion %s: %s at %s", state.value, bundle_id, storage_path)

            set_stage("register")
            bundle = self._build_bundle(bundle_id, content_hash, manifest, size_bytes, storage_path)
            result = await self._register(bundle, manifest)
            if result.status == "ingested":
                state = IngestState.ARTIFACTS_REGISTERED
                self._logger.info(
                    "Ingestion %s: %d artifacts", state.value, result.artifact_count
                )
            return result
        except ReproStoreError as exc:
            if state is IngestState.STAGED:
                state = IngestState.DISCARDED
                self._logger.warning("Ingestion %s: %s", state.value, exc)
            raise
        finally:
            self._release_staging(staging)
            clear_context()

    async def _register(self, bundle: Bundle, manifest: NormalizedManifest) -> IngestResult:
        try:
            stored_id, already_existed = await self._repository.insert_bundle_if_absent(bundle)
        except ContentHashConflictError:
            already_existed, stored_id = True, ""
        except ReproStoreError:
            self._discard_committed(bundle)
            raise

        if already_existed:
            return await self._resolve_lost_race(bundle, manifest, stored_id)

        for entry in manifest.artifacts:
            await self._register_artifact(bundle, entry)

        return IngestResult(
            bundle_id=bundle.bundle_id,
            status="ingested",
            artifact_count=manifest.artifact_count,
            created_at=bundle.created_at,
        )

    async def _register_artifact(self, bundle: Bundle, entry: ManifestArtifact) -> None:
        """Insert one artifact row; failures are logged and skipped."""
        try:
            path = self._store.resolve_path(bundle.storage_path, entry.filename)
            try:
                size = self._store.file_size(path)
            except OSError:
                self._logger.warning("Artifact %s listed in manifest but not found", entry.filename)
                size = 0
            artifact = Artifact(
                artifact_id=generate_artifact_id(),
                bundle_id=bundle.bundle_id,
                filename=entry.filename,
                artifact_type=entry.artifact_type,
                mime_type=entry.mime_type,
                size_bytes=size,
                storage_path=entry.filename,
            )
            await self._repository.insert_artifact(artifact)
        except (ReproStoreError, ValidationError) as exc:
            self._logger.warning("Failed to register artifact %s: %s", entry.filename, exc)

    async def _resolve_lost_race(
        self, bundle: Bundle, manifest: NormalizedManifest, stored_id: str
    ) -> IngestResult:
        """Another ingestion registered the same content first: defer to it."""
        self._logger.warning(
            "Content %s registered concurrently, discarding committed copy %s",
            bundle.content_hash, bundle.bundle_id,
        )
        self._discard_committed(bundle)
        if not stored_id:
            winner = await self._repository.get_bundle_by_hash(bundle.content_hash)
            if winner is None:
                raise StorageError(
                    "content hash conflict but no bundle found on re-query; retry ingestion",
                    details={"content_hash": bundle.content_hash},
                )
            stored_id = winner.bundle_id
        return IngestResult(
            bundle_id=stored_id,
            status="already_exists",
            artifact_count=manifest.artifact_count,
        )

    # --- Helpers ---

    @staticmethod
    def _build_bundle(
        bundle_id: str,
        content_hash: str,
        manifest: NormalizedManifest,
        size_bytes: int,
        storage_path: str,
    ) -> Bundle:
        return Bundle(
            bundle_id=bundle_id,
            content_hash=content_hash,
            schema_version=manifest.schema_version,
            build_id=manifest.build_id,
            map_name=manifest.map_name,
            platform=manifest.platform,
            harness_version=manifest.harness_version,
            bundle_timestamp=manifest.timestamp,
            metadata=manifest.metadata,
            size_bytes=size_bytes,
            artifact_count=manifest.artifact_count,
            storage_path=storage_path,
        )

    def _discard_committed(self, bundle: Bundle) -> None:
        try:
            self._store.remove_dir(self._store.resolve_path(bundle.storage_path))
        except StorageError as exc:
            self._logger.error(
                "Failed to remove committed directory of %s: %s", bundle.bundle_id, exc
            )

    def _release_staging(self, staging: Path) -> None:
        try:
            self._store.remove_dir(staging)
        except StorageError as exc:
            self._logger.error("Failed to remove staging directory %s: %s", staging, exc)
