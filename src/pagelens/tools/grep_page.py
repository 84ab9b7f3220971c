"""Tool handler for grep_page_content.

Searches a cached page for a regular expression and returns each match with
25 lines of context on either side. The pattern is compiled before the page
is loaded, so an invalid pattern is rejected without any network work.
No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import GrepMatchOutput, GrepPageInput, GrepPageOutput
from pagelens.normalizer import split_lines
from pagelens.pages import load_page
from pagelens.windows import compile_pattern, grep

if TYPE_CHECKING:
    from pagelens.state import AppState


async def handle(
    url: str,
    pattern: str,
    max_matches: int,
    case_sensitive: bool,
    state: AppState,
    request_id: str | None = None,
) -> dict:
    """Handle a grep_page_content tool call."""
    log = structlog.get_logger().bind(tool="grep_page_content", url=url, request_id=request_id)
    log.info("handler_called", pattern=pattern)

    try:
        validated = GrepPageInput(
            url=url,
            pattern=pattern,
            max_matches=max_matches,
            case_sensitive=case_sensitive,
        )
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a valid URL, a non-empty pattern and 1 <= max_matches <= 100.",
            recoverable=False,
        ) from exc

    regex = compile_pattern(validated.pattern, validated.case_sensitive)

    page = await load_page(validated.url, state, request_id)
    matches = grep(page.content, regex, validated.max_matches)
    total_lines = len(split_lines(page.content))
    log.info("grep_complete", matches_found=len(matches), from_cache=page.from_cache)

    output = GrepPageOutput(
        url=validated.url,
        from_cache=page.from_cache,
        fetched_at=page.fetched_at,
        pattern=validated.pattern,
        total_lines=total_lines,
        matches_found=len(matches),
        max_matches_limit=validated.max_matches,
        results=[GrepMatchOutput(**asdict(m)) for m in matches],
    )
    return output.model_dump(mode="json")
