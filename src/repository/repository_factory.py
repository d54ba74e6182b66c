# src/repository/repository_factory.py
"""Factory for bundle repository instantiation."""

from __future__ import annotations

import logging

from reprostore.config.settings import Settings
from reprostore.repository.base_repository import BaseBundleRepository


def create_repository(
    settings: Settings, logger: logging.Logger | None = None
) -> BaseBundleRepository:
    """Instantiate the configured repository backend.

    Args:
        settings: Application settings (REPOSITORY_BACKEND env var).
        logger: Optional logger handle passed to the backend.

    Returns:
        Configured BaseBundleRepository implementation.

    Raises:
        ValueError: If the backend is not supported.
    """
    backend = settings.repository_backend

    if backend == "sqlite":
        from reprostore.repository.sqlite_repository import SqliteBundleRepository
        return SqliteBundleRepository(db_path=settings.database_path, logger=logger)

    if backend == "memory":
        from reprostore.repository.memory_repository import InMemoryBundleRepository
        return InMemoryBundleRepository(logger=logger)

    raise ValueError(f"Unsupported repository backend: {backend!r}")
