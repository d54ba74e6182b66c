# src/ingest/content_hasher.py
"""Content fingerprinting over raw upload bytes.

The fingerprint is ``sha256:<64 hex>`` and is the deduplication key for
bundles. Three input shapes are supported and all are single pass:

  - an archive already on disk (CLI ingestion)
  - an upload stream, persisted to disk while it is hashed (HTTP ingestion)
  - a set of named blobs (multi-file ingestion), hashed as the
    concatenation of the blobs in sorted-name order
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from pathlib import Path
from typing import BinaryIO

from reprostore.core.errors import InvalidArchiveError

HASH_ALGORITHM = "sha256"
HASH_PREFIX = f"{HASH_ALGORITHM}:"
CHUNK_SIZE = 1024 * 1024


class ContentHasher:
    """Incremental sha256 with the ``sha256:`` output prefix."""

    def __init__(self) -> None:
        self._hash = hashlib.sha256()
        self._bytes_seen = 0

    def update(self, data: bytes) -> None:
        self._hash.update(data)
        self._bytes_seen += len(data)

    @property
    def bytes_seen(self) -> int:
        return self._bytes_seen

    def hexdigest(self) -> str:
        """Return the formatted fingerprint (``sha256:<hex>``)."""
        return format_hash(self._hash.hexdigest())


def format_hash(hex_digest: str) -> str:
    return f"{HASH_PREFIX}{hex_digest}"


def hash_bytes(data: bytes) -> str:
    """Fingerprint an in-memory byte string."""
    hasher = ContentHasher()
    hasher.update(data)
    return hasher.hexdigest()


def hash_file(path: Path | str, chunk_size: int = CHUNK_SIZE) -> str:
    """Fingerprint a file on disk by streaming it in fixed-size chunks."""
    hasher = ContentHasher()
    with open(path, "rb") as fh:
        while chunk := fh.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def hash_stream_to_file(
    reader: BinaryIO,
    dest_path: Path,
    max_bytes: int | None = None,
    chunk_size: int = CHUNK_SIZE,
) -> tuple[str, int]:
    """Persist ``reader`` to ``dest_path`` while hashing it.

    Args:
        reader: Binary stream (upload body, file object, BytesIO).
        dest_path: File to create; parent must exist.
        max_bytes: Optional upper bound on the upload size.
        chunk_size: Read size per iteration.

    Returns:
        Tuple of (fingerprint, bytes written).

    Raises:
        InvalidArchiveError: If the stream cannot be read or exceeds max_bytes.
    """
    hasher = ContentHasher()
    try:
        with open(dest_path, "wb") as out:
            while chunk := reader.read(chunk_size):
                hasher.update(chunk)
                if max_bytes is not None and hasher.bytes_seen > max_bytes:
                    raise InvalidArchiveError(
                        f"upload exceeds maximum size of {max_bytes} bytes",
                        details={"max_bytes": max_bytes},
                    )
                out.write(chunk)
    except (OSError, ValueError) as exc:
        raise InvalidArchiveError(f"failed to read upload: {exc}") from exc
    return hasher.hexdigest(), hasher.bytes_seen


def hash_blobs(files: Mapping[str, bytes]) -> str:
    """Fingerprint a set of named blobs.

    Blobs are concatenated in sorted-name order so that the value does not
    depend on the iteration order of the mapping. Names are not hashed.
    """
    hasher = ContentHasher()
    for name in sorted(files):
        hasher.update(files[name])
    return hasher.hexdigest()


def is_content_hash(value: str) -> bool:
    """Check ``value`` looks like ``sha256:<64 lowercase hex>``."""
    if not value.startswith(HASH_PREFIX):
        return False
    digest = value[len(HASH_PREFIX):]
    return len(digest) == 64 and all(c in "0123456789abcdef" for c in digest)
