"""Protocol interfaces for swappable components.

Tool handlers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other unlocker backends to be swapped in without changing tool code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pagelens.models.cache import CacheLookup


class CacheProtocol(Protocol):
    """Interface for the page cache."""

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[str], Awaitable[str]],
    ) -> CacheLookup: ...

    def sweep_expired(self) -> int: ...

    def __len__(self) -> int: ...


class FetcherProtocol(Protocol):
    """Interface for the unlocker client."""

    async def fetch_markdown(self, url: str, request_id: str | None = None) -> str: ...

    async def fetch_html(self, url: str, request_id: str | None = None) -> str: ...

    async def search(
        self,
        query: str,
        engine: str = "google",
        cursor: str | None = None,
        request_id: str | None = None,
    ) -> str: ...
