"""Common wrapper around every tool call.

Assigns the correlation id, writes the request/response/error audit
records, enforces the rate limit and counts calls. Errors are logged here and
re-raised; server.py turns them into MCP error results.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from pagelens.errors import PageLensError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pagelens.state import AppState

T = TypeVar("T")

LOGGED_RESULT_CHARS = 2000


def new_request_id() -> str:
    return str(uuid.uuid4())


def _summarise_result(result: Any) -> Any:
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    if len(text) > LOGGED_RESULT_CHARS:
        return text[:LOGGED_RESULT_CHARS] + "... (truncated for logging)"
    return result


async def dispatch(
    tool: str,
    arguments: dict[str, Any],
    state: AppState,
    handler: Callable[[str], Awaitable[T]],
    *,
    request_id: str | None = None,
) -> T:
    """Run ``handler(request_id)`` with auditing and rate limiting."""
    request_id = request_id or new_request_id()
    log = structlog.get_logger().bind(tool=tool, request_id=request_id)
    started = time.monotonic()

    state.audit_log.append(f"MCP_TOOL_REQUEST_{tool}", request_id, {"tool": tool, "data": arguments})
    log.info("tool_executing", arguments=arguments)

    try:
        state.rate_limiter.allow()
        state.tool_calls[tool] += 1
        result = await handler(request_id)
    except PageLensError as exc:
        state.audit_log.append(
            f"MCP_TOOL_ERROR_{tool}",
            request_id,
            {
                "tool": tool,
                "duration_ms": _elapsed_ms(started),
                "error": exc.message,
                "code": exc.code,
                "status": exc.status_code,
                "success": False,
            },
        )
        log.warning("tool_error", code=exc.code, message=exc.message, recoverable=exc.recoverable)
        raise
    except Exception as exc:
        state.audit_log.append(
            f"MCP_TOOL_ERROR_{tool}",
            request_id,
            {
                "tool": tool,
                "duration_ms": _elapsed_ms(started),
                "error": str(exc),
                "error_type": type(exc).__name__,
                "success": False,
            },
        )
        log.error("tool_unexpected_error", exc_info=True)
        raise
    finally:
        log.info("tool_finished", duration_ms=_elapsed_ms(started))

    state.audit_log.append(
        f"MCP_TOOL_RESPONSE_{tool}",
        request_id,
        {
            "tool": tool,
            "duration_ms": _elapsed_ms(started),
            "result": _summarise_result(result),
            "success": True,
        },
    )
    return result


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)
