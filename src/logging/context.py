# src/logging/context.py
"""Contextual logging support: attach upload_id, bundle_id and stage to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per ingestion.
_upload_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "upload_id", default=None
)
_bundle_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "bundle_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    upload_id: str | None = None
    bundle_id: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        upload_id=_upload_id.get(),
        bundle_id=_bundle_id.get(),
        stage=_stage.get(),
    )


def set_ingest_context(upload_id: str, bundle_id: str | None = None) -> None:
    """Set ingestion-level context (called once per upload)."""
    _upload_id.set(upload_id)
    _bundle_id.set(bundle_id)


def set_bundle_context(bundle_id: str) -> None:
    _bundle_id.set(bundle_id)


def set_stage(stage: str | None) -> None:
    """Set the pipeline stage currently executing."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _upload_id.set(None)
    _bundle_id.set(None)
    _stage.set(None)
