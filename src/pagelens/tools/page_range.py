"""Tool handler for get_page_content_range.

Returns an arbitrary 1-based line range of a cached page. The span is
validated before the cache is consulted, so a bad request never costs a fetch.
No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import MAX_RANGE_LINES, PageRangeInput, PageRangeOutput
from pagelens.normalizer import MAX_LINE_LENGTH
from pagelens.pages import load_page
from pagelens.windows import line_range

if TYPE_CHECKING:
    from pagelens.state import AppState


async def handle(
    url: str,
    start_line: int,
    end_line: int,
    state: AppState,
    request_id: str | None = None,
) -> dict:
    """Handle a get_page_content_range tool call."""
    log = structlog.get_logger().bind(tool="get_page_content_range", url=url, request_id=request_id)
    log.info("handler_called", start_line=start_line, end_line=end_line)

    try:
        validated = PageRangeInput(url=url, start_line=start_line, end_line=end_line)
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                f"Provide a valid URL and 1 <= start_line <= end_line, "
                f"spanning at most {MAX_RANGE_LINES} lines."
            ),
            recoverable=False,
        ) from exc

    page = await load_page(validated.url, state, request_id)
    window = line_range(page.content, validated.start_line, validated.end_line)
    log.info("cache_hit" if page.from_cache else "fetch_complete", total_lines=window.total_lines)

    output = PageRangeOutput(
        url=validated.url,
        from_cache=page.from_cache,
        fetched_at=page.fetched_at,
        start_line=window.start_line,
        end_line=window.end_line,
        total_lines=window.total_lines,
        lines_returned=window.lines_returned,
        truncated=window.truncated,
        max_line_length=MAX_LINE_LENGTH,
        content=window.content,
    )
    return output.model_dump(mode="json")
