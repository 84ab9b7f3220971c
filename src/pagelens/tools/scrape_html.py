"""Tool handler for scrape_as_html. Uncached: HTML is not normalised."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import ScrapeInput

if TYPE_CHECKING:
    from pagelens.state import AppState


async def handle(url: str, state: AppState, request_id: str | None = None) -> dict:
    """Handle a scrape_as_html tool call."""
    log = structlog.get_logger().bind(tool="scrape_as_html", url=url, request_id=request_id)
    log.info("handler_called")

    try:
        validated = ScrapeInput(url=url)
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide an absolute http(s) URL (max 2048 chars).",
            recoverable=False,
        ) from exc

    html = await state.fetcher.fetch_html(validated.url, request_id)
    return {"url": validated.url, "status": "ok", "content": html}
