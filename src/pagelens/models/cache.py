from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PageCacheEntry(BaseModel):
    """Normalised page content held in the in-memory cache.

    Entries are immutable: a refetch replaces the entry wholesale.
    """

    model_config = ConfigDict(frozen=True)

    key: str  # Fetch URL
    content: str  # Normalised markdown, every line <= MAX_LINE_LENGTH
    fetched_at: datetime


class CacheLookup(BaseModel):
    """Result of ``PageCache.get_or_fetch``."""

    content: str
    from_cache: bool
    fetched_at: datetime
