# tests/unit/storage/test_unit_sweeper.py
"""Tests for storage/sweeper.py."""

from __future__ import annotations

import asyncio
import os
import time
from unittest.mock import MagicMock

import pytest

from reprostore.core.errors import StorageError
from reprostore.storage.sweeper import StagingSweeper


def _stale(store, token: str):
    path = store.create_staging_dir(token)
    past = time.time() - 7200
    os.utime(path, (past, past))
    return path


class TestRunOnce:
    def test_removes_stale(self, store):
        path = _stale(store, "aaaaaaaa")
        assert StagingSweeper(store, max_age_seconds=3600).run_once() == 1
        assert not path.exists()

    def test_failures_are_swallowed(self):
        store = MagicMock()
        store.sweep_stale_staging.side_effect = StorageError("read tmp dir: denied")
        assert StagingSweeper(store).run_once() == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_without_interval_sweeps_once(self, store):
        path = _stale(store, "bbbbbbbb")
        sweeper = StagingSweeper(store, max_age_seconds=3600, interval_seconds=0)
        await sweeper.start()
        assert not path.exists()
        assert sweeper.is_running is False
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_periodic_loop(self):
        store = MagicMock()
        store.sweep_stale_staging.return_value = 0
        sweeper = StagingSweeper(store, max_age_seconds=60, interval_seconds=0.01)
        await sweeper.start()
        assert sweeper.is_running
        await asyncio.sleep(0.1)
        await sweeper.stop()
        assert sweeper.is_running is False
        # startup sweep plus at least one timed sweep
        assert store.sweep_stale_staging.call_count >= 2
        store.sweep_stale_staging.assert_called_with(60)

    @pytest.mark.asyncio
    async def test_double_start_keeps_one_task(self):
        store = MagicMock()
        store.sweep_stale_staging.return_value = 0
        sweeper = StagingSweeper(store, interval_seconds=30)
        await sweeper.start()
        task = sweeper._task
        await sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()
