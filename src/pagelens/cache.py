"""In-memory page cache with TTL expiry and age-based eviction.

The cache maps a fetch URL to its normalised content. It lives for the
process lifetime on ``AppState`` and is only ever touched from the event loop
thread. No method awaits between reading and mutating the map, so inserts and
evictions are atomic with respect to concurrent tool calls; the only
suspension point is the caller's fetch inside ``get_or_fetch``.

Expired entries are removed on read (so a stale page is never served, even
when the refetch that follows fails) and by ``sweep_expired``, which the
background scheduler runs on a fixed interval to bound memory for pages that
are never read again.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from pagelens.models.cache import CacheLookup, PageCacheEntry
from pagelens.normalizer import MAX_LINE_LENGTH, normalize

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PageCache:
    """Dict-backed page cache implementing CacheProtocol."""

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        *,
        line_width: int = MAX_LINE_LENGTH,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_size = max_size
        self._line_width = line_width
        self._clock = clock
        self._entries: dict[str, PageCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, key: str) -> PageCacheEntry | None:
        """Return a fresh entry, or ``None``. Expired entries are deleted."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        age = self._clock() - entry.fetched_at
        if age >= self._ttl:
            del self._entries[key]
            log.debug("cache_expired", key=key, age_seconds=round(age.total_seconds()))
            return None
        return entry

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[str], Awaitable[str]],
    ) -> CacheLookup:
        """Return cached content for ``key``, fetching and normalising on a miss.

        Fetch failures propagate to the caller and leave the cache unchanged.
        """
        entry = self.get(key)
        if entry is not None:
            log.debug("cache_hit", key=key, size=len(self._entries))
            return CacheLookup(content=entry.content, from_cache=True, fetched_at=entry.fetched_at)

        log.debug("cache_miss", key=key)
        raw = await fetch_fn(key)
        entry = self.put(key, raw)
        return CacheLookup(content=entry.content, from_cache=False, fetched_at=entry.fetched_at)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def put(self, key: str, raw: str) -> PageCacheEntry:
        """Normalise ``raw``, store it under ``key`` and enforce ``max_size``."""
        entry = PageCacheEntry(
            key=key,
            content=normalize(raw, self._line_width),
            fetched_at=self._clock(),
        )
        self._entries[key] = entry
        self._evict_oldest()
        log.debug("cache_set", key=key, size=len(self._entries))
        return entry

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def _evict_oldest(self) -> int:
        """Drop entries with the oldest ``fetched_at`` until within ``max_size``."""
        overflow = len(self._entries) - self._max_size
        if overflow <= 0:
            return 0

        by_age = sorted(self._entries.values(), key=lambda e: e.fetched_at)
        for entry in by_age[:overflow]:
            del self._entries[entry.key]
        log.info("cache_evicted", removed=overflow, size=len(self._entries))
        return overflow

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Delete every entry whose age has reached the TTL. Returns removed count."""
        now = self._clock()
        expired = [key for key, e in self._entries.items() if now - e.fetched_at >= self._ttl]
        for key in expired:
            del self._entries[key]

        removed = len(expired) + self._evict_oldest()
        if removed:
            log.info("cache_sweep_complete", removed=removed, size=len(self._entries))
        return removed
