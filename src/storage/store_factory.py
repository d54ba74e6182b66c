# src/storage/store_factory.py
"""Factory: instantiate the bundle store from configuration."""

from __future__ import annotations

import logging

from reprostore.config.settings import Settings
from reprostore.storage.base_bundle_store import BaseBundleStore
from reprostore.storage.local_store import LocalBundleStore


def create_store(settings: Settings, logger: logging.Logger | None = None) -> BaseBundleStore:
    """Create the bundle store rooted at ``settings.data_dir``.

    Raises:
        StorageError: If the data directory cannot be prepared.
    """
    return LocalBundleStore(settings.data_dir, logger=logger)
