"""Cache-or-fetch access to normalised pages, shared by the page tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagelens.models.cache import CacheLookup
    from pagelens.state import AppState


async def load_page(url: str, state: AppState, request_id: str | None) -> CacheLookup:
    """Return normalised content for ``url``, fetching through the unlocker on a miss."""

    async def fetch(key: str) -> str:
        return await state.fetcher.fetch_markdown(key, request_id)

    return await state.cache.get_or_fetch(url, fetch)
