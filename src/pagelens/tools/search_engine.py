"""Tool handler for search_engine.

Runs up to five search queries concurrently through the unlocker. Google
results pages are reduced to a clean link list; other engines, and Google
pages where no links could be extracted, are returned as rendered markdown.
No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import SearchEngineInput, SearchEngineOutput, SearchResultItem
from pagelens.orchestrator import BatchItem
from pagelens.serp import extract_serp_results, format_results

if TYPE_CHECKING:
    from pagelens.models.tools import SearchQuery
    from pagelens.state import AppState


async def handle(queries: list[dict], state: AppState, request_id: str | None = None) -> dict:
    """Handle a search_engine tool call."""
    log = structlog.get_logger().bind(tool="search_engine", request_id=request_id)
    log.info("handler_called", query_count=len(queries))

    try:
        validated = SearchEngineInput.model_validate({"queries": queries})
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                "Provide 1-5 queries, each with a non-empty query, an engine of "
                "google/bing/yandex and an optional numeric cursor."
            ),
            recoverable=False,
        ) from exc

    timeout_ms = state.settings.batch.timeout_ms
    items = [
        BatchItem(
            operation=_search_one(q, state, request_id),
            identity={"query": q.query, "engine": q.engine, "cursor": q.cursor},
        )
        for q in validated.queries
    ]
    results = await state.batch_runner.run_batch(items, timeout_ms)

    output = SearchEngineOutput(
        queries_processed=len(validated.queries),
        timeout_ms=timeout_ms,
        results=results,
    )
    return output.model_dump(mode="json")


async def _search_one(q: SearchQuery, state: AppState, request_id: str | None) -> dict:
    content = await state.fetcher.search(q.query, q.engine, q.cursor, request_id)

    cleaned = False
    if q.engine == "google":
        serp = extract_serp_results(content)
        if serp:
            content = format_results(serp)
            cleaned = True
        else:
            structlog.get_logger().info("serp_extraction_empty", query=q.query)

    item = SearchResultItem(
        query=q.query,
        engine=q.engine,
        cursor=q.cursor,
        cleaned=cleaned,
        content=content,
    )
    return item.model_dump(mode="json")
