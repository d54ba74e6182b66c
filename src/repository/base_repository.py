# src/repository/base_repository.py
"""Abstract bundle repository interface.

The content-hash uniqueness of bundles is enforced here, by the backend.
The ingestion pipeline's lookup by hash is only a fast path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reprostore.core.models import (
    Artifact,
    Bundle,
    BundleListQuery,
    BundleListResult,
    QANote,
)


class BaseBundleRepository(ABC):
    """Unified interface for bundle persistence backends."""

    @abstractmethod
    async def insert_bundle_if_absent(self, bundle: Bundle) -> tuple[str, bool]:
        """Insert ``bundle`` unless its content hash is already known.

        Returns:
            Tuple of (bundle_id, already_existed). When the hash exists the
            id of the stored bundle is returned and nothing is written.

        Raises:
            ContentHashConflictError: The uniqueness constraint fired on
                insert (a concurrent writer won).
            DatabaseError: Any other persistence failure.
        """

    @abstractmethod
    async def insert_artifact(self, artifact: Artifact) -> None:
        """Record one artifact of an existing bundle."""

    @abstractmethod
    async def get_bundle(self, bundle_id: str) -> Bundle | None:
        """Bundle with its artifacts, tags and notes, or None."""

    @abstractmethod
    async def get_bundle_by_hash(self, content_hash: str) -> Bundle | None:
        """Bundle row (without relations) for a content hash, or None."""

    @abstractmethod
    async def get_artifact(self, artifact_id: str) -> Artifact | None: ...

    @abstractmethod
    async def get_artifacts(self, bundle_id: str) -> list[Artifact]:
        """Artifacts of a bundle ordered by filename."""

    @abstractmethod
    async def list_bundles(self, query: BundleListQuery) -> BundleListResult:
        """Filtered page of bundles, newest first."""

    @abstractmethod
    async def add_tag(self, bundle_id: str, tag: str) -> None:
        """Attach a tag (adding an existing tag is a no-op)."""

    @abstractmethod
    async def get_tags(self, bundle_id: str) -> list[str]: ...

    @abstractmethod
    async def add_note(self, note: QANote) -> None: ...

    @abstractmethod
    async def get_notes(self, bundle_id: str) -> list[QANote]:
        """Notes of a bundle, oldest first."""

    @abstractmethod
    async def check_health(self) -> None:
        """Raise DatabaseError if the backend is unusable."""

    @abstractmethod
    async def close(self) -> None: ...
