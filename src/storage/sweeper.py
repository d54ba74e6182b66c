# src/storage/sweeper.py
"""Periodic garbage collection of stale staging directories.

One sweep runs at startup; with a positive interval a background asyncio
task repeats it until stopped. Only directories older than ``max_age``
are touched, so the sweep is safe next to live ingestions. Sweeping is
best effort: failures are logged and never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging

from reprostore.core.errors import ReproStoreError
from reprostore.logging.logger import get_logger
from reprostore.storage.base_bundle_store import BaseBundleStore

DEFAULT_MAX_AGE_SECONDS = 3600.0
STOP_TIMEOUT_SECONDS = 10.0


class StagingSweeper:
    """Reclaim staging directories left behind by crashed ingestions."""

    def __init__(
        self,
        store: BaseBundleStore,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        interval_seconds: float = 0.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._max_age = max_age_seconds
        self._interval = interval_seconds
        self._logger = logger or get_logger("storage.sweeper")
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep now. Returns the number of directories removed (0 on failure)."""
        try:
            return self._store.sweep_stale_staging(self._max_age)
        except (ReproStoreError, OSError) as exc:
            self._logger.error("Staging sweep failed: %s", exc)
            return 0

    async def start(self) -> None:
        """Run the startup sweep, then schedule the periodic loop if enabled."""
        removed = self.run_once()
        if removed:
            self._logger.info("Startup sweep removed %d staging directories", removed)
        if self._interval <= 0:
            return
        if self.is_running:
            self._logger.warning("StagingSweeper is already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        self._logger.info("Staging sweep scheduled every %.0f seconds", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=STOP_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            self._logger.warning("Sweep loop did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            self.run_once()
