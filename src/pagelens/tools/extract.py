"""Tool handler for extract.

Scrapes a page as markdown, then asks the connected client's model (through
the completion callable supplied by server.py) to turn it into JSON.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog

from pagelens.errors import ErrorCode, PageLensError
from pagelens.models.tools import ExtractInput

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pagelens.state import AppState

    # (prompt, system_prompt) -> completion text
    CompletionFn = Callable[[str, str], Awaitable[str]]

SYSTEM_PROMPT = (
    "You are a data extraction specialist. You MUST respond with ONLY valid JSON, "
    "no other text or formatting. Extract the requested information from the markdown "
    "content and return it as a properly formatted JSON object. Do not include any "
    "explanations, markdown formatting, or text outside the JSON response."
)
DEFAULT_USER_PROMPT = (
    "Extract the requested information from this markdown content and return ONLY a JSON object:"
)


def build_prompt(markdown: str, extraction_prompt: str | None) -> str:
    user_prompt = extraction_prompt or DEFAULT_USER_PROMPT
    return (
        f"{user_prompt}\n\nMarkdown content:\n{markdown}\n\n"
        "Remember: Respond with ONLY valid JSON, no other text."
    )


async def handle(
    url: str,
    extraction_prompt: str | None,
    state: AppState,
    complete: CompletionFn,
    request_id: str | None = None,
) -> dict:
    """Handle an extract tool call."""
    log = structlog.get_logger().bind(tool="extract", url=url, request_id=request_id)
    log.info("handler_called")

    try:
        validated = ExtractInput(url=url, extraction_prompt=extraction_prompt)
    except ValueError as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide an absolute http(s) URL (max 2048 chars).",
            recoverable=False,
        ) from exc

    markdown = await state.fetcher.fetch_markdown(validated.url, request_id)
    text = await complete(build_prompt(markdown, validated.extraction_prompt), SYSTEM_PROMPT)

    try:
        data = json.loads(text)
    except ValueError:
        log.warning("extract_invalid_json", response_length=len(text))
        data = None

    return {"url": validated.url, "status": "ok", "data": data, "content": text}
