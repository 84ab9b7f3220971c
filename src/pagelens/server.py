"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the correct transport (stdio or HTTP)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, Any

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, SamplingMessage, TextContent

import pagelens.tools.extract as t_extract
import pagelens.tools.grep_page as t_grep
import pagelens.tools.page_previews as t_previews
import pagelens.tools.page_range as t_range
import pagelens.tools.scrape_html as t_scrape
import pagelens.tools.search_engine as t_search
import pagelens.tools.session_stats as t_stats
from pagelens import __version__
from pagelens.audit import AuditLog, AuditLogProcessor
from pagelens.cache import PageCache
from pagelens.config import Settings
from pagelens.dispatcher import dispatch
from pagelens.errors import ErrorCode, PageLensError
from pagelens.orchestrator import BatchRunner
from pagelens.ratelimit import SlidingWindowRateLimiter
from pagelens.schedulers import run_cache_sweep_scheduler
from pagelens.state import AppState
from pagelens.transport import run_http_server
from pagelens.unlocker import UnlockerClient, build_http_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

log = structlog.get_logger()

SAMPLING_MAX_TOKENS = 4096


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def build_audit_log(settings: Settings) -> AuditLog:
    return AuditLog(settings.audit_log.path, int(settings.audit_log.max_size_mb * 1024 * 1024))


def _setup_logging(settings: Settings, audit_log: AuditLog | None = None) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if audit_log is not None and audit_log.enabled:
        shared_processors.append(AuditLogProcessor(audit_log))

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_state(settings: Settings, audit_log: AuditLog) -> AppState:
    """Wire every shared component. The HTTP client is closed by the caller."""
    http_client = build_http_client(settings.unlocker)
    return AppState(
        settings=settings,
        cache=PageCache(
            ttl_seconds=settings.cache.ttl_seconds,
            max_size=settings.cache.max_size,
        ),
        fetcher=UnlockerClient(http_client, settings.unlocker, audit_log),
        rate_limiter=SlidingWindowRateLimiter(settings.rate_limit.spec),
        audit_log=audit_log,
        batch_runner=BatchRunner(cancel_on_timeout=settings.batch.cancel_on_timeout),
        http_client=http_client,
    )


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    audit_log = build_audit_log(settings)
    _setup_logging(settings, audit_log)

    log.info(
        "server_starting",
        version=__version__,
        transport=settings.server.transport,
    )
    if not settings.unlocker.api_token:
        log.warning("unlocker_api_token_missing", hint="Set PAGELENS__UNLOCKER__API_TOKEN")

    state = build_state(settings, audit_log)
    cache_sweep_task = asyncio.create_task(run_cache_sweep_scheduler(state))

    spec = settings.rate_limit.spec
    log.info(
        "server_started",
        version=__version__,
        transport=settings.server.transport,
        cache_ttl_seconds=settings.cache.ttl_seconds,
        cache_max_size=settings.cache.max_size,
        rate_limit=spec.display if spec else None,
        audit_log=str(audit_log.path) if audit_log.enabled else None,
    )

    try:
        yield state
    finally:
        cache_sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await cache_sweep_task
        await state.batch_runner.aclose()
        if state.http_client is not None:
            await state.http_client.aclose()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("pagelens", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg; set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: PageLensError) -> CallToolResult:
    """Convert a PageLensError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_result()))],
        isError=True,
    )


async def _call(
    tool: str,
    arguments: dict[str, Any],
    ctx: Context,
    handler: Callable[[AppState, str], Awaitable[dict]],
) -> object:
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await dispatch(
            tool,
            arguments,
            state,
            lambda request_id: handler(state, request_id),
            request_id=str(ctx.request_id),
        )
    except PageLensError as exc:
        return _serialise_tool_error(exc)


def _sampling_completion(ctx: Context) -> Callable[[str, str], Awaitable[str]]:
    """Completion callable backed by MCP sampling on the calling client's session."""

    async def complete(prompt: str, system_prompt: str) -> str:
        try:
            result = await ctx.session.create_message(
                messages=[
                    SamplingMessage(role="user", content=TextContent(type="text", text=prompt))
                ],
                max_tokens=SAMPLING_MAX_TOKENS,
                system_prompt=system_prompt,
                include_context="thisServer",
            )
        except McpError as exc:
            raise PageLensError(
                code=ErrorCode.SAMPLING_UNAVAILABLE,
                message=f"Sampling request failed: {exc}",
                suggestion="Use an MCP client that supports sampling, or scrape the page instead.",
                recoverable=False,
            ) from exc

        if not isinstance(result.content, TextContent):
            raise PageLensError(
                code=ErrorCode.SAMPLING_UNAVAILABLE,
                message=f"Sampling returned {result.content.type} content, expected text",
                suggestion="Retry the extraction.",
                recoverable=True,
            )
        return result.content.text

    return complete


@mcp.tool()
async def get_page_previews(urls: list[str], ctx: Context) -> object:
    """Fetch up to 10 URLs in parallel and return markdown previews (first 500 lines).

    Batch related pages together. Pages are cached, and every line is at most
    250 characters. Use get_page_content_range for lines beyond the preview.
    """
    return await _call(
        "get_page_previews",
        {"urls": urls},
        ctx,
        lambda state, rid: t_previews.handle(urls, state, rid),
    )


@mcp.tool()
async def get_page_content_range(url: str, start_line: int, end_line: int, ctx: Context) -> object:
    """Fetch a specific 1-based, inclusive line range from a single URL (max 5000 lines)."""
    return await _call(
        "get_page_content_range",
        {"url": url, "start_line": start_line, "end_line": end_line},
        ctx,
        lambda state, rid: t_range.handle(url, start_line, end_line, state, rid),
    )


@mcp.tool()
async def grep_page_content(
    url: str,
    pattern: str,
    ctx: Context,
    max_matches: int = 20,
    case_sensitive: bool = True,
) -> object:
    """Search a page for a regex and return matches with 25 lines of context each.

    Patterns use Python regular expression syntax, given plain or as
    /pattern/flags (flags i, m, s). JavaScript-style named groups (?<name>...)
    are accepted.
    """
    return await _call(
        "grep_page_content",
        {
            "url": url,
            "pattern": pattern,
            "max_matches": max_matches,
            "case_sensitive": case_sensitive,
        },
        ctx,
        lambda state, rid: t_grep.handle(url, pattern, max_matches, case_sensitive, state, rid),
    )


@mcp.tool()
async def search_engine(queries: list[dict], ctx: Context) -> object:
    """Run up to 5 search queries in parallel on google, bing or yandex.

    Each query is {"query": str, "engine": "google"|"bing"|"yandex", "cursor": page}.
    """
    return await _call(
        "search_engine",
        {"queries": queries},
        ctx,
        lambda state, rid: t_search.handle(queries, state, rid),
    )


@mcp.tool()
async def scrape_as_html(url: str, ctx: Context) -> object:
    """Scrape a single webpage and return its raw HTML."""
    return await _call(
        "scrape_as_html",
        {"url": url},
        ctx,
        lambda state, rid: t_scrape.handle(url, state, rid),
    )


@mcp.tool()
async def extract(url: str, ctx: Context, extraction_prompt: str | None = None) -> object:
    """Scrape a webpage and convert it to structured JSON using the client's model."""
    complete = _sampling_completion(ctx)
    return await _call(
        "extract",
        {"url": url, "extraction_prompt": extraction_prompt},
        ctx,
        lambda state, rid: t_extract.handle(url, extraction_prompt, state, complete, rid),
    )


@mcp.tool()
async def session_stats(ctx: Context) -> object:
    """Report tool usage during this session."""
    return await _call(
        "session_stats",
        {},
        ctx,
        lambda state, rid: t_stats.handle(state),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()

    if settings.server.transport == "http":
        _setup_logging(settings, build_audit_log(settings))
        run_http_server(mcp, settings)
        return

    mcp.run()


if __name__ == "__main__":
    main()
