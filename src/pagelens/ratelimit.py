"""Sliding-window rate limiter for tool calls.

The limit is configured as ``<count>/<duration><unit>`` (``100/1h``,
``50/30m``, ``2/1s``). The string is parsed once when settings load, so a
malformed value stops the server at startup instead of failing tool calls.
"""

from __future__ import annotations

import re
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

_RATE_LIMIT_RE = re.compile(r"^(\d+)/(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


@dataclass(frozen=True)
class RateLimitSpec:
    limit: int
    window_seconds: float
    display: str


def parse_rate_limit(value: str) -> RateLimitSpec:
    """Parse ``"100/1h"`` into a RateLimitSpec. Raises ValueError when malformed."""
    match = _RATE_LIMIT_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid rate limit {value!r}. Use: 100/1h or 50/30m")

    limit, duration, unit = match.groups()
    if int(limit) <= 0 or int(duration) <= 0:
        raise ValueError(f"Invalid rate limit {value!r}: count and duration must be positive")

    return RateLimitSpec(
        limit=int(limit),
        window_seconds=float(int(duration) * _UNIT_SECONDS[unit]),
        display=value,
    )


class SlidingWindowRateLimiter:
    """Counts allowed calls inside the trailing window.

    Runs on the event loop thread only; ``allow`` never awaits, so the
    timestamp deque needs no lock.
    """

    def __init__(
        self,
        spec: RateLimitSpec | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._spec = spec
        self._clock = clock
        self._timestamps: deque[float] = deque()

    @property
    def spec(self) -> RateLimitSpec | None:
        return self._spec

    def allow(self) -> bool:
        """Record one call, or raise RATE_LIMITED when the window is full."""
        if self._spec is None:
            return True

        now = self._clock()
        window_start = now - self._spec.window_seconds
        while self._timestamps and self._timestamps[0] <= window_start:
            self._timestamps.popleft()

        if len(self._timestamps) >= self._spec.limit:
            log.warning(
                "rate_limit_exceeded",
                limit=self._spec.display,
                calls_in_window=len(self._timestamps),
            )
            raise PageLensError(
                code=ErrorCode.RATE_LIMITED,
                message=f"Rate limit exceeded: {self._spec.display}",
                suggestion="Wait for the rate limit window to pass before calling again.",
                recoverable=True,
            )

        self._timestamps.append(now)
        return True

    def calls_in_window(self) -> int:
        return len(self._timestamps)
