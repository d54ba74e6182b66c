# src/api/facade.py
"""Public API facade: single entry point for ingesting and querying bundles.

Usage:
    from reprostore.api.facade import BundleService
    async with BundleService.from_settings(load_settings()) as service:
        result = await service.ingest_archive_file("bundle.zip")
        report = await service.validate(result.bundle_id)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import BinaryIO

from reprostore.config.settings import Settings
from reprostore.core.errors import ArtifactNotFoundError, BundleNotFoundError
from reprostore.core.ids import generate_note_id
from reprostore.core.models import (
    Artifact,
    Bundle,
    BundleListQuery,
    BundleListResult,
    IngestResult,
    QANote,
)
from reprostore.ingest.pipeline import IngestionPipeline
from reprostore.logging.logger import get_logger
from reprostore.repository.base_repository import BaseBundleRepository
from reprostore.repository.repository_factory import create_repository
from reprostore.storage.base_bundle_store import BaseBundleStore
from reprostore.storage.store_factory import create_store
from reprostore.storage.sweeper import StagingSweeper
from reprostore.validation.engine import ValidationEngine
from reprostore.validation.models import BundleSummary, ValidationReport
from reprostore.validation.summary import SummaryBuilder


class BundleService:
    """Wires store, repository, pipeline and validators together."""

    def __init__(
        self,
        store: BaseBundleStore,
        repository: BaseBundleRepository,
        pipeline: IngestionPipeline | None = None,
        staging_max_age_seconds: float = 3600.0,
        sweep_interval_seconds: float = 0.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or get_logger("api.facade")
        self._store = store
        self._repository = repository
        self._pipeline = pipeline or IngestionPipeline(store, repository)
        self._validator = ValidationEngine()
        self._summaries = SummaryBuilder()
        self._staging_max_age = staging_max_age_seconds
        self._sweeper = StagingSweeper(
            store,
            max_age_seconds=staging_max_age_seconds,
            interval_seconds=sweep_interval_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> BundleService:
        """Build the service from configuration.

        Raises:
            StorageError: If the data directory cannot be prepared.
            DatabaseError: If the repository cannot be opened.
        """
        store = create_store(settings)
        repository = create_repository(settings)
        pipeline = IngestionPipeline(
            store, repository, max_upload_bytes=settings.max_upload_bytes,
        )
        return cls(
            store,
            repository,
            pipeline=pipeline,
            staging_max_age_seconds=settings.staging_max_age_seconds,
            sweep_interval_seconds=settings.staging_sweep_interval_minutes * 60.0,
        )

    @property
    def store(self) -> BaseBundleStore:
        return self._store

    @property
    def repository(self) -> BaseBundleRepository:
        return self._repository

    # --- Ingestion ---

    async def ingest_archive_file(self, archive_path: Path | str) -> IngestResult:
        return await self._pipeline.ingest_archive_file(archive_path)

    async def ingest_stream(self, reader: BinaryIO) -> IngestResult:
        return await self._pipeline.ingest_stream(reader)

    async def ingest_archive_bytes(self, data: bytes) -> IngestResult:
        return await self._pipeline.ingest_archive_bytes(data)

    async def ingest_files(self, files: Mapping[str, bytes]) -> IngestResult:
        return await self._pipeline.ingest_files(files)

    # --- Queries ---

    async def get_bundle(self, bundle_id: str) -> Bundle:
        bundle = await self._repository.get_bundle(bundle_id)
        if bundle is None:
            raise BundleNotFoundError(bundle_id)
        return bundle

    async def get_artifact(self, artifact_id: str) -> tuple[Artifact, Path]:
        """Artifact record plus the absolute path of its file.

        Raises:
            ArtifactNotFoundError: Unknown artifact or owning bundle gone.
        """
        artifact = await self._repository.get_artifact(artifact_id)
        if artifact is None:
            raise ArtifactNotFoundError(artifact_id)
        bundle = await self._repository.get_bundle(artifact.bundle_id)
        if bundle is None:
            raise ArtifactNotFoundError(artifact_id)
        return artifact, self._store.resolve_path(bundle.storage_path, artifact.storage_path)

    async def list_bundles(self, query: BundleListQuery | None = None) -> BundleListResult:
        return await self._repository.list_bundles(query or BundleListQuery())

    # --- Annotations ---

    async def add_tag(self, bundle_id: str, tag: str) -> list[str]:
        """Tag a bundle; returns the bundle's tags afterwards."""
        tag = tag.strip()
        if not tag:
            raise ValueError("tag must not be empty")
        await self.get_bundle(bundle_id)
        await self._repository.add_tag(bundle_id, tag)
        return await self._repository.get_tags(bundle_id)

    async def add_note(self, bundle_id: str, author: str, content: str) -> QANote:
        if not author.strip() or not content.strip():
            raise ValueError("author and content are required")
        await self.get_bundle(bundle_id)
        note = QANote(
            note_id=generate_note_id(),
            bundle_id=bundle_id,
            author=author.strip(),
            content=content,
        )
        await self._repository.add_note(note)
        self._logger.info("Added note %s to %s", note.note_id, bundle_id)
        return note

    # --- Validation ---

    async def bundle_path(self, bundle_id: str) -> Path:
        bundle = await self.get_bundle(bundle_id)
        return self._store.resolve_path(bundle.storage_path)

    async def validate(self, bundle_id: str) -> ValidationReport:
        return self._validator.validate(await self.bundle_path(bundle_id))

    async def summarize(self, bundle_id: str) -> BundleSummary:
        summary = self._summaries.build(await self.bundle_path(bundle_id))
        if not summary.bundle_id:
            summary.bundle_id = bundle_id
        return summary

    # --- Maintenance ---

    def sweep_staging(self, max_age_seconds: float | None = None) -> int:
        if max_age_seconds is None:
            return self._sweeper.run_once()
        return StagingSweeper(self._store, max_age_seconds=max_age_seconds).run_once()

    async def start(self) -> None:
        """Startup sweep plus the periodic sweep loop when an interval is set.

        Long-running hosts call this once; one-shot CLI commands do not.
        """
        await self._sweeper.start()

    async def check_health(self) -> None:
        self._store.check_health()
        await self._repository.check_health()

    async def close(self) -> None:
        await self._sweeper.stop()
        await self._repository.close()

    async def __aenter__(self) -> BundleService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
