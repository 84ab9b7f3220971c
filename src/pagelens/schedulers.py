"""Background scheduler coroutines."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pagelens.state import AppState

log = structlog.get_logger()


async def run_cache_sweep_scheduler(state: AppState) -> None:
    """Sweep expired cache entries every ``cache.sweep_interval_seconds``.

    Runs for the whole process lifetime on both transports, independent of
    tool traffic. A failing sweep is logged and the loop carries on.
    """
    interval_seconds = state.settings.cache.sweep_interval_seconds

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            state.cache.sweep_expired()
        except Exception:
            log.warning("cache_sweep_error", exc_info=True)
