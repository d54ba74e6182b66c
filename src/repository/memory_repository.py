# src/repository/memory_repository.py
"""In-memory bundle repository (REPOSITORY_BACKEND=memory).

Dict-backed, with the same uniqueness and ordering semantics as the sqlite
backend. Nothing survives the process; intended for tests and throwaway runs.
"""

from __future__ import annotations

import logging

from reprostore.core.errors import DatabaseError
from reprostore.core.models import (
    Artifact,
    Bundle,
    BundleListQuery,
    BundleListResult,
    QANote,
)
from reprostore.logging.logger import get_logger
from reprostore.repository.base_repository import BaseBundleRepository


class InMemoryBundleRepository(BaseBundleRepository):
    """Repository held entirely in process memory."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("repository.memory_repository")
        self._bundles: dict[str, Bundle] = {}
        self._by_hash: dict[str, str] = {}
        self._artifacts: dict[str, Artifact] = {}
        self._tags: dict[str, set[str]] = {}
        self._notes: dict[str, list[QANote]] = {}
        self._closed = False

    async def insert_bundle_if_absent(self, bundle: Bundle) -> tuple[str, bool]:
        self._ensure_open()
        existing = self._by_hash.get(bundle.content_hash)
        if existing is not None:
            return existing, True
        if bundle.bundle_id in self._bundles:
            raise DatabaseError(
                f"insert bundle: duplicate bundle_id {bundle.bundle_id}",
                details={"bundle_id": bundle.bundle_id},
            )
        stored = bundle.model_copy(update={"artifacts": [], "tags": [], "notes": []})
        self._bundles[bundle.bundle_id] = stored
        self._by_hash[bundle.content_hash] = bundle.bundle_id
        self._logger.debug("Stored bundle %s (%s)", bundle.bundle_id, bundle.content_hash)
        return bundle.bundle_id, False

    async def insert_artifact(self, artifact: Artifact) -> None:
        self._ensure_open()
        self._require_bundle(artifact.bundle_id, "insert artifact")
        if artifact.artifact_id in self._artifacts:
            raise DatabaseError(
                f"insert artifact: duplicate artifact_id {artifact.artifact_id}",
                details={"artifact_id": artifact.artifact_id},
            )
        self._artifacts[artifact.artifact_id] = artifact

    async def get_bundle(self, bundle_id: str) -> Bundle | None:
        self._ensure_open()
        bundle = self._bundles.get(bundle_id)
        if bundle is None:
            return None
        return bundle.model_copy(update={
            "artifacts": await self.get_artifacts(bundle_id),
            "tags": await self.get_tags(bundle_id),
            "notes": await self.get_notes(bundle_id),
        })

    async def get_bundle_by_hash(self, content_hash: str) -> Bundle | None:
        self._ensure_open()
        bundle_id = self._by_hash.get(content_hash)
        if bundle_id is None:
            return None
        return self._bundles[bundle_id].model_copy()

    async def get_artifact(self, artifact_id: str) -> Artifact | None:
        self._ensure_open()
        return self._artifacts.get(artifact_id)

    async def get_artifacts(self, bundle_id: str) -> list[Artifact]:
        self._ensure_open()
        return sorted(
            (a for a in self._artifacts.values() if a.bundle_id == bundle_id),
            key=lambda a: a.filename,
        )

    async def list_bundles(self, query: BundleListQuery) -> BundleListResult:
        self._ensure_open()
        # Insertion order breaks created_at ties, newest first
        ordered = list(reversed(self._bundles.values()))
        matches = [
            b for b in ordered
            if (not query.build_id or b.build_id == query.build_id)
            and (not query.map_name or b.map_name == query.map_name)
            and (not query.platform or b.platform == query.platform)
            and (query.since is None or b.created_at >= query.since)
        ]
        matches.sort(key=lambda b: b.created_at, reverse=True)
        limit, offset = query.effective_limit, query.effective_offset
        return BundleListResult(
            bundles=[b.model_copy() for b in matches[offset:offset + limit]],
            total=len(matches),
            limit=limit,
            offset=offset,
        )

    async def add_tag(self, bundle_id: str, tag: str) -> None:
        self._ensure_open()
        self._require_bundle(bundle_id, "add tag")
        self._tags.setdefault(bundle_id, set()).add(tag)

    async def get_tags(self, bundle_id: str) -> list[str]:
        self._ensure_open()
        return sorted(self._tags.get(bundle_id, ()))

    async def add_note(self, note: QANote) -> None:
        self._ensure_open()
        self._require_bundle(note.bundle_id, "add note")
        self._notes.setdefault(note.bundle_id, []).append(note)

    async def get_notes(self, bundle_id: str) -> list[QANote]:
        self._ensure_open()
        return sorted(self._notes.get(bundle_id, []), key=lambda n: n.created_at)

    async def check_health(self) -> None:
        self._ensure_open()

    async def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise DatabaseError("repository is closed")

    def _require_bundle(self, bundle_id: str, what: str) -> None:
        if bundle_id not in self._bundles:
            raise DatabaseError(
                f"{what}: unknown bundle {bundle_id}", details={"bundle_id": bundle_id}
            )

