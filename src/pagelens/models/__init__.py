from __future__ import annotations

from pagelens.models.cache import CacheLookup, PageCacheEntry
from pagelens.models.tools import (
    ExtractInput,
    GrepMatchOutput,
    GrepPageInput,
    GrepPageOutput,
    PagePreviewItem,
    PagePreviewsInput,
    PagePreviewsOutput,
    PageRangeInput,
    PageRangeOutput,
    ScrapeInput,
    SearchEngineInput,
    SearchEngineOutput,
    SearchQuery,
    SearchResultItem,
)

__all__ = [
    # cache
    "PageCacheEntry",
    "CacheLookup",
    # tools
    "PagePreviewsInput",
    "PagePreviewsOutput",
    "PagePreviewItem",
    "PageRangeInput",
    "PageRangeOutput",
    "GrepPageInput",
    "GrepPageOutput",
    "GrepMatchOutput",
    "SearchQuery",
    "SearchEngineInput",
    "SearchEngineOutput",
    "SearchResultItem",
    "ScrapeInput",
    "ExtractInput",
]
