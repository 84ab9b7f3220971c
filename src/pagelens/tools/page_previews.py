"""Tool handler for get_page_previews.

Fetches up to ten URLs concurrently through the cache, each raced against
the batch timeout, and returns a bounded preview of each page. One failing
or slow URL only affects its own entry in ``results``.
No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import PagePreviewItem, PagePreviewsInput, PagePreviewsOutput
from pagelens.normalizer import MAX_LINE_LENGTH
from pagelens.orchestrator import BatchItem
from pagelens.pages import load_page
from pagelens.windows import preview

if TYPE_CHECKING:
    from pagelens.state import AppState


async def handle(urls: list[str], state: AppState, request_id: str | None = None) -> dict:
    """Handle a get_page_previews tool call."""
    log = structlog.get_logger().bind(tool="get_page_previews", request_id=request_id)
    log.info("handler_called", url_count=len(urls))

    try:
        validated = PagePreviewsInput(urls=urls)
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide 1-10 absolute http(s) URLs (max 2048 chars each).",
            recoverable=False,
        ) from exc

    batch = state.settings.batch
    items = [
        BatchItem(
            operation=_preview_one(url, batch.preview_lines, state, request_id),
            identity={"url": url},
        )
        for url in validated.urls
    ]
    results = await state.batch_runner.run_batch(items, batch.timeout_ms)

    failed = sum(1 for r in results if r["status"] == "error")
    log.info("previews_complete", succeeded=len(results) - failed, failed=failed)

    output = PagePreviewsOutput(
        now=datetime.now(UTC),
        ttl_ms=round(state.settings.cache.ttl_seconds * 1000),
        max_line_length=MAX_LINE_LENGTH,
        timeout_ms=batch.timeout_ms,
        urls_processed=len(validated.urls),
        results=results,
    )
    return output.model_dump(mode="json")


async def _preview_one(
    url: str,
    preview_lines: int,
    state: AppState,
    request_id: str | None,
) -> dict:
    page = await load_page(url, state, request_id)
    window = preview(page.content, preview_lines)

    if window.truncated:
        note = (
            f"Page has {window.total_lines} total lines. Use "
            f"get_page_content_range(url, start_line, end_line) to get lines "
            f"{window.lines_returned + 1}-{window.total_lines}. Max 5000 lines per request."
        )
    else:
        note = "Complete page content shown."

    item = PagePreviewItem(
        url=url,
        from_cache=page.from_cache,
        fetched_at=page.fetched_at,
        start_line=1,
        end_line=window.lines_returned,
        preview_lines=preview_lines,
        total_lines=window.total_lines,
        truncated=window.truncated,
        char_limit_reached=window.char_limit_reached,
        content=window.content,
        note=note,
    )
    return item.model_dump(mode="json")
