# src/storage/base_bundle_store.py
"""Abstract bundle store interface.

Filesystem side of ingestion: staging areas, the atomic commit of a staged
directory into permanent storage, path resolution and staging GC.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class BaseBundleStore(ABC):
    """Unified interface for bundle storage backends."""

    @property
    @abstractmethod
    def data_dir(self) -> Path:
        """Root of the data directory."""

    @abstractmethod
    def create_staging_dir(self, token: str) -> Path:
        """Create an isolated staging directory named after ``token``."""

    @abstractmethod
    def remove_dir(self, path: Path) -> None:
        """Recursively remove a directory (missing is not an error)."""

    @abstractmethod
    def commit_to_permanent(self, staging_path: Path, bundle_id: str) -> str:
        """Atomically move a staged directory into permanent storage.

        Returns:
            Storage path of the bundle relative to the data directory.
        """

    @abstractmethod
    def resolve_path(self, relative_path: str, *parts: str) -> Path:
        """Absolute path for a stored location, never outside the data dir."""

    @abstractmethod
    def sweep_stale_staging(self, max_age_seconds: float) -> int:
        """Delete staging directories older than ``max_age_seconds``.

        Returns:
            Number of directories removed.
        """

    @abstractmethod
    def check_health(self) -> None:
        """Raise StorageError if the store is not writable."""

    @abstractmethod
    def dir_size(self, path: Path) -> int:
        """Total size in bytes of the regular files below ``path``."""

    @abstractmethod
    def file_size(self, path: Path) -> int:
        """Size in bytes of one file."""
