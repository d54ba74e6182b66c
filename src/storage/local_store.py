# src/storage/local_store.py
"""Local filesystem bundle store (default backend).

Commit is a single ``os.rename`` of the staging directory into
``bundles/``. Source and destination must share a filesystem: a
cross-device rename is reported as STORAGE_ERROR, never emulated by a copy.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import time
from pathlib import Path

from reprostore.core.errors import StorageError
from reprostore.logging.logger import get_logger
from reprostore.storage import layout
from reprostore.storage.base_bundle_store import BaseBundleStore


class LocalBundleStore(BaseBundleStore):
    """Store bundles under a local data directory."""

    def __init__(self, data_dir: Path | str, logger: logging.Logger | None = None) -> None:
        """Initialize and create the standard directory tree.

        Args:
            data_dir: Root of the data directory (created if missing).
            logger: Logger handle; defaults to ``reprostore.storage.local_store``.

        Raises:
            StorageError: If the directory tree cannot be created.
        """
        self._logger = logger or get_logger("storage.local_store")
        self._data_dir = Path(data_dir).expanduser().resolve()
        try:
            layout.ensure_data_directories(self._data_dir)
        except OSError as exc:
            raise StorageError(
                f"create data directory {self._data_dir}: {exc}",
                details={"path": str(self._data_dir)},
            ) from exc

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def bundles_dir(self) -> Path:
        return layout.bundles_dir(self._data_dir)

    @property
    def tmp_dir(self) -> Path:
        return layout.tmp_dir(self._data_dir)

    # --- Staging ---

    def create_staging_dir(self, token: str) -> Path:
        path = layout.staging_dir(self._data_dir, token)
        try:
            path.mkdir(parents=True, exist_ok=False)
        except FileExistsError as exc:
            raise StorageError(
                f"staging directory already exists: {path}", details={"path": str(path)}
            ) from exc
        except OSError as exc:
            raise StorageError(f"create staging dir: {exc}", details={"path": str(path)}) from exc
        self._logger.debug("Created staging dir %s", path)
        return path

    def remove_dir(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise StorageError(f"remove {path}: {exc}", details={"path": str(path)}) from exc
        self._logger.debug("Removed %s", path)

    # --- Commit ---

    def commit_to_permanent(self, staging_path: Path, bundle_id: str) -> str:
        """Rename ``staging_path`` to ``bundles/<rb_xxxxxxxx>``.

        Raises:
            StorageError: Destination exists, source missing, rename failed,
                or source and destination are on different filesystems.
        """
        dest = layout.bundle_dir(self._data_dir, bundle_id)
        try:
            self.bundles_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"ensure bundles dir: {exc}") from exc

        if dest.exists():
            raise StorageError(
                f"destination already exists: {dest}",
                details={"bundle_id": bundle_id, "path": str(dest)},
            )
        try:
            os.rename(staging_path, dest)
        except OSError as exc:
            if exc.errno == errno.EXDEV:
                raise StorageError(
                    "staging and bundle directories are on different filesystems; "
                    "refusing non-atomic move",
                    details={"bundle_id": bundle_id, "source": str(staging_path)},
                ) from exc
            raise StorageError(
                f"rename to bundles: {exc}",
                details={"bundle_id": bundle_id, "source": str(staging_path)},
            ) from exc

        relative = dest.relative_to(self._data_dir).as_posix()
        self._logger.info("Committed bundle %s to %s", bundle_id, relative)
        return relative

    # --- Paths ---

    def resolve_path(self, relative_path: str, *parts: str) -> Path:
        """Join ``relative_path`` and ``parts`` under the data directory.

        Raises:
            StorageError: If the result resolves outside the data directory.
        """
        candidate = self._data_dir.joinpath(relative_path, *parts).resolve()
        if candidate != self._data_dir and self._data_dir not in candidate.parents:
            raise StorageError(
                f"path escapes data directory: {relative_path}",
                details={"path": "/".join((relative_path, *parts))},
            )
        return candidate

    def bundle_path(self, storage_path: str) -> Path:
        return self.resolve_path(storage_path)

    def artifact_path(self, bundle_storage_path: str, artifact_path: str) -> Path:
        return self.resolve_path(bundle_storage_path, artifact_path)

    @staticmethod
    def file_size(path: Path) -> int:
        return path.stat().st_size

    @staticmethod
    def dir_size(path: Path) -> int:
        """Total size of regular files below ``path``."""
        total = 0
        for root, _dirs, files in os.walk(path):
            for name in files:
                total += os.lstat(os.path.join(root, name)).st_size
        return total

    # --- Maintenance ---

    def sweep_stale_staging(self, max_age_seconds: float) -> int:
        """Remove staging directories whose mtime is older than the cutoff.

        Failures on individual directories are logged and skipped.
        """
        try:
            entries = list(os.scandir(self.tmp_dir))
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise StorageError(f"read tmp dir: {exc}") from exc

        cutoff = time.time() - max_age_seconds
        removed = 0
        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                    continue
                shutil.rmtree(entry.path)
            except OSError as exc:
                self._logger.warning("Failed to sweep staging dir %s: %s", entry.path, exc)
                continue
            removed += 1

        if removed:
            self._logger.info("Swept %d stale staging directories", removed)
        return removed

    def check_health(self) -> None:
        marker = self.tmp_dir / layout.HEALTH_CHECK_FILENAME
        try:
            marker.write_bytes(b"")
            marker.unlink()
        except OSError as exc:
            raise StorageError(f"storage not writable: {exc}") from exc
