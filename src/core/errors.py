# src/core/errors.py
"""Error taxonomy shared by ingestion, storage and persistence.

Every failure that reaches a caller carries a stable machine-readable
``code`` plus a human message. Validation findings are NOT exceptions:
they are returned as data in a ValidationReport.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes exposed to callers."""

    INVALID_ARCHIVE = "INVALID_ARCHIVE"
    INVALID_MANIFEST = "INVALID_MANIFEST"
    UNSUPPORTED_SCHEMA = "UNSUPPORTED_SCHEMA"
    STORAGE_ERROR = "STORAGE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    BUNDLE_NOT_FOUND = "BUNDLE_NOT_FOUND"
    ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"


class ReproStoreError(Exception):
    """Base class for structured errors."""

    code: ErrorCode = ErrorCode.STORAGE_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def with_details(self, **details: Any) -> ReproStoreError:
        """Attach extra key/value details and return self (chainable)."""
        self.details.update(details)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize as the structured error payload."""
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidArchiveError(ReproStoreError):
    """Malformed or unsafe archive, or unreadable upload stream."""

    code = ErrorCode.INVALID_ARCHIVE


class InvalidManifestError(ReproStoreError):
    """Missing, unparseable or semantically invalid manifest."""

    code = ErrorCode.INVALID_MANIFEST


class UnsupportedSchemaError(ReproStoreError):
    code = ErrorCode.UNSUPPORTED_SCHEMA


class StorageError(ReproStoreError):
    """Staging, commit or other filesystem failure."""

    code = ErrorCode.STORAGE_ERROR


class DatabaseError(ReproStoreError):
    code = ErrorCode.DATABASE_ERROR


class ContentHashConflictError(DatabaseError):
    """Uniqueness constraint on content_hash rejected an insert.

    Raised when two ingestions of identical bytes race past the dedup
    pre-check. The caller resolves it by re-querying for the bundle that
    won the race.
    """

    def __init__(self, content_hash: str) -> None:
        super().__init__(
            f"bundle with content hash {content_hash} already exists",
            details={"content_hash": content_hash},
        )
        self.content_hash = content_hash


class BundleNotFoundError(ReproStoreError):
    code = ErrorCode.BUNDLE_NOT_FOUND

    def __init__(self, bundle_id: str) -> None:
        super().__init__(f"bundle not found: {bundle_id}", {"bundle_id": bundle_id})


class ArtifactNotFoundError(ReproStoreError):
    code = ErrorCode.ARTIFACT_NOT_FOUND

    def __init__(self, artifact_id: str) -> None:
        super().__init__(
            f"artifact not found: {artifact_id}", {"artifact_id": artifact_id}
        )
