"""Unit tests for the cache sweep scheduler in schedulers.py.

asyncio.sleep is patched so each test controls how many loop iterations run
before the scheduler is cancelled.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from pagelens.config import Settings
from pagelens.schedulers import run_cache_sweep_scheduler
from pagelens.state import AppState

if TYPE_CHECKING:
    from pagelens.cache import PageCache
    from tests.conftest import FakeClock


def _make_state(cache: PageCache | MagicMock) -> AppState:
    return AppState(
        settings=Settings(cache={"sweep_interval_seconds": 45}),
        cache=cache,
        fetcher=MagicMock(),
        rate_limiter=MagicMock(),
        audit_log=MagicMock(),
        batch_runner=MagicMock(),
    )


def _sleep_n_times(n: int, durations: list[float]):
    async def fake_sleep(duration: float) -> None:
        durations.append(duration)
        if len(durations) > n:
            raise asyncio.CancelledError

    return fake_sleep


class TestCacheSweepScheduler:
    async def test_sleeps_configured_interval_then_sweeps(self) -> None:
        cache = MagicMock()
        state = _make_state(cache)
        durations: list[float] = []

        with (
            patch("asyncio.sleep", side_effect=_sleep_n_times(2, durations)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_cache_sweep_scheduler(state)

        assert durations == [45, 45, 45]
        assert cache.sweep_expired.call_count == 2

    async def test_sweep_error_does_not_stop_loop(self) -> None:
        cache = MagicMock()
        cache.sweep_expired.side_effect = [RuntimeError("boom"), 0]
        state = _make_state(cache)
        durations: list[float] = []

        with (
            patch("asyncio.sleep", side_effect=_sleep_n_times(2, durations)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_cache_sweep_scheduler(state)

        assert cache.sweep_expired.call_count == 2

    async def test_removes_expired_entries(self, cache: PageCache, clock: FakeClock) -> None:
        cache.put("old", "x")
        clock.advance(601)
        state = _make_state(cache)

        with (
            patch("asyncio.sleep", side_effect=_sleep_n_times(1, [])),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_cache_sweep_scheduler(state)

        assert len(cache) == 0
