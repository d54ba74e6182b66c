# src/ingest/extractor.py
"""Materialize an inbound payload into a staging directory.

Two payload shapes are handled here:

  - zip archive on disk: every entry must resolve inside the staging root,
    otherwise the whole ingestion fails with INVALID_ARCHIVE. Regular files
    are streamed, never buffered whole.
  - set of named blobs (multipart upload): names carrying path separators
    or ``..`` are flattened to their base name before writing.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import zipfile
from collections.abc import Mapping
from pathlib import Path, PurePosixPath

from reprostore.core.errors import InvalidArchiveError
from reprostore.logging.logger import get_logger

DEFAULT_DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644
COPY_BUFFER_SIZE = 1024 * 1024


def sanitize_member_name(name: str) -> str:
    """Flatten a multipart file name to a safe base name.

    ``../../etc/passwd`` → ``passwd``; ``logs\\game.log`` → ``game.log``.

    Raises:
        InvalidArchiveError: If nothing usable remains after flattening.
    """
    flattened = name
    if ".." in name or "/" in name or "\\" in name:
        flattened = PurePosixPath(name.replace("\\", "/")).name
    flattened = flattened.replace("\x00", "")
    if flattened in ("", ".", ".."):
        raise InvalidArchiveError(
            f"invalid file name in upload: {name!r}", details={"filename": name}
        )
    return flattened


def _declared_mode(info: zipfile.ZipInfo) -> int:
    """Unix permission bits stored in the entry's external attributes (0 if none)."""
    return stat.S_IMODE(info.external_attr >> 16)


class BundleExtractor:
    """Writes archive entries or uploaded blobs under a staging root."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("ingest.extractor")

    def extract_archive(self, archive_path: Path, dest_dir: Path) -> list[Path]:
        """Extract a zip archive into ``dest_dir``.

        Args:
            archive_path: Zip file on disk.
            dest_dir: Existing staging directory.

        Returns:
            Paths of the regular files written, in archive order.

        Raises:
            InvalidArchiveError: On a corrupt archive or any entry that would
                land outside ``dest_dir``.
        """
        root = dest_dir.resolve()
        written: list[Path] = []
        try:
            with zipfile.ZipFile(archive_path) as zf:
                entries = zf.infolist()
                # Reject unsafe names before anything touches the disk
                for info in entries:
                    self._resolve_entry(root, info.filename, allow_root=info.is_dir())
                for info in entries:
                    if info.is_dir():
                        target = self._resolve_entry(root, info.filename, allow_root=True)
                        if target == root:
                            continue
                        mode = _declared_mode(info) or DEFAULT_DIR_MODE
                        target.mkdir(parents=True, exist_ok=True)
                        # owner keeps rwx so the staging area can always be removed
                        os.chmod(target, mode | stat.S_IRWXU)
                        continue
                    target = self._resolve_entry(root, info.filename)
                    self._extract_member(zf, info, target)
                    written.append(target)
        except InvalidArchiveError:
            raise
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
            raise InvalidArchiveError(f"failed to extract archive: {exc}") from exc
        except (OSError, RuntimeError, NotImplementedError) as exc:
            # RuntimeError: encrypted entry; NotImplementedError: unknown compression
            raise InvalidArchiveError(f"failed to extract archive: {exc}") from exc

        self._logger.debug(
            "Extracted %d files from %s into %s", len(written), archive_path, dest_dir,
        )
        return written

    def write_file_set(self, files: Mapping[str, bytes], dest_dir: Path) -> list[Path]:
        """Write individually uploaded blobs into ``dest_dir`` (flat layout).

        Raises:
            InvalidArchiveError: If a name flattens to nothing or two names
                collide after flattening.
        """
        written: dict[str, Path] = {}
        for raw_name, data in files.items():
            name = sanitize_member_name(raw_name)
            if name != raw_name:
                self._logger.warning("Flattened upload file name %r to %r", raw_name, name)
            if name in written:
                raise InvalidArchiveError(
                    f"duplicate file name after flattening: {name!r}",
                    details={"filename": raw_name},
                )
            dest = dest_dir / name
            dest.write_bytes(data)
            os.chmod(dest, DEFAULT_FILE_MODE)
            written[name] = dest

        self._logger.debug("Wrote %d uploaded files into %s", len(written), dest_dir)
        return list(written.values())

    @staticmethod
    def _resolve_entry(root: Path, name: str, allow_root: bool = False) -> Path:
        """Map an archive entry name to a path strictly below ``root``."""
        normalized = name.replace("\\", "/")
        if not normalized or normalized.startswith("/") or (
            len(normalized) > 1 and normalized[1] == ":"
        ):
            raise InvalidArchiveError(
                f"invalid file path in archive: {name}", details={"entry": name}
            )
        target = (root / normalized).resolve()
        if target == root and allow_root:
            return target
        if root not in target.parents:
            raise InvalidArchiveError(
                f"invalid file path in archive: {name}", details={"entry": name}
            )
        return target

    @staticmethod
    def _extract_member(zf: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with zf.open(info) as src, open(target, "wb") as out:
            shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)
        mode = _declared_mode(info)
        if mode:
            os.chmod(target, mode | stat.S_IRUSR)
