"""Client for the web unlocker API.

All network I/O goes through a single UnlockerClient instance shared across
tool calls. The client receives an httpx.AsyncClient via constructor
injection; the lifespan owns the client lifecycle. Every exchange is written
to the audit log as HTTP_REQUEST / HTTP_RESPONSE / HTTP_ERROR records tagged
with the caller's correlation id.
"""

from __future__ import annotations

import secrets
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from pagelens import __version__
from pagelens.errors import ErrorCode, PageLensError

if TYPE_CHECKING:
    from pagelens.audit import AuditLog
    from pagelens.config import UnlockerSettings

log = structlog.get_logger()

USAGE_LIMIT_HEADER = "x-brd-err-code"
USAGE_LIMIT_CODE = "client_10100"
LOGGED_RESPONSE_CHARS = 1000

_USAGE_LIMIT_MESSAGE = (
    "The monthly request limit for the free unlocker tier has been reached. "
    "Stop the current task and tell the user how to upgrade: "
    "1. Create a new Web Unlocker zone in the provider control panel. "
    "2. Point the server at it (PAGELENS__UNLOCKER__ZONE=<zone name>). "
    "3. Restart the MCP client after the configuration change. "
    "The new zone has its own usage limits."
)


def build_http_client(settings: UnlockerSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        base_url=settings.api_url,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": f"pagelens/{__version__}"},
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        ),
    )


def search_url(engine: str, query: str, cursor: str | None = None) -> str:
    """Build the search engine results URL for ``query`` at page ``cursor``."""
    q = quote(query, safe="")
    page = int(cursor) if cursor else 0
    start = page * 10
    if engine == "yandex":
        return f"https://yandex.com/search/?text={q}&p={page}"
    if engine == "bing":
        return f"https://www.bing.com/search?q={q}&first={start + 1}"
    return f"https://www.google.com/search?q={q}&start={start}"


class UnlockerClient:
    """Fetches pages through the unlocker ``/request`` endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: UnlockerSettings,
        audit_log: AuditLog,
    ) -> None:
        self._client = client
        self._settings = settings
        self._audit_log = audit_log

    async def fetch_markdown(self, url: str, request_id: str | None = None) -> str:
        """Fetch ``url`` rendered as markdown."""
        return await self._request(
            {"url": url, "zone": self._settings.zone, "format": "raw", "data_format": "markdown"},
            request_id,
        )

    async def fetch_html(self, url: str, request_id: str | None = None) -> str:
        """Fetch ``url`` as raw HTML."""
        return await self._request(
            {"url": url, "zone": self._settings.zone, "format": "raw"},
            request_id,
        )

    async def search(
        self,
        query: str,
        engine: str = "google",
        cursor: str | None = None,
        request_id: str | None = None,
    ) -> str:
        """Fetch a search engine results page as markdown."""
        return await self.fetch_markdown(search_url(engine, query, cursor), request_id)

    async def _request(self, payload: dict[str, Any], request_id: str | None) -> str:
        call_id = secrets.token_hex(5)
        started = time.monotonic()
        headers = {"Authorization": f"Bearer {self._settings.api_token}"}

        self._audit_log.append(
            f"HTTP_REQUEST_{call_id}",
            request_id,
            {"url": "/request", "method": "POST", "data": payload},
        )

        try:
            response = await self._client.post("/request", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            self._log_error(call_id, request_id, started, error=str(exc))
            raise PageLensError(
                code=ErrorCode.UPSTREAM_ERROR,
                message=f"Network error fetching {payload['url']}: {exc}",
                suggestion="The unlocker service may be temporarily unavailable. Try again.",
                recoverable=True,
            ) from exc

        if not response.is_success:
            self._log_error(
                call_id,
                request_id,
                started,
                error=f"HTTP {response.status_code}",
                status=response.status_code,
                headers=dict(response.headers),
                data=response.text,
            )
            raise self._upstream_error(response, payload["url"])

        text = response.text
        logged = text
        if len(text) > LOGGED_RESPONSE_CHARS:
            logged = text[:LOGGED_RESPONSE_CHARS] + "... (truncated)"
        self._audit_log.append(
            f"HTTP_RESPONSE_{call_id}",
            request_id,
            {
                "url": "/request",
                "status": response.status_code,
                "headers": dict(response.headers),
                "data": logged,
                "duration_ms": _elapsed_ms(started),
            },
        )
        log.info(
            "fetch_complete",
            url=payload["url"],
            status_code=response.status_code,
            content_length=len(text),
            request_id=request_id,
        )
        return text

    def _upstream_error(self, response: httpx.Response, url: str) -> PageLensError:
        if (
            response.headers.get(USAGE_LIMIT_HEADER) == USAGE_LIMIT_CODE
            and self._settings.zone == self._settings.free_tier_zone
        ):
            return PageLensError(
                code=ErrorCode.USAGE_LIMIT_EXCEEDED,
                message=_USAGE_LIMIT_MESSAGE,
                suggestion="Configure a dedicated unlocker zone.",
                recoverable=False,
                status_code=response.status_code,
            )

        body = response.text
        message = (
            f"HTTP {response.status_code}: {body}"
            if body
            else f"HTTP {response.status_code} fetching {url}"
        )
        return PageLensError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=message,
            suggestion="The page or the unlocker service may be temporarily unavailable.",
            recoverable=response.status_code >= 500 or response.status_code == 429,
            status_code=response.status_code,
        )

    def _log_error(
        self,
        call_id: str,
        request_id: str | None,
        started: float,
        **fields: Any,
    ) -> None:
        self._audit_log.append(
            f"HTTP_ERROR_{call_id}",
            request_id,
            {"url": "/request", **fields, "duration_ms": _elapsed_ms(started)},
        )
        log.warning(
            "fetch_failed",
            request_id=request_id,
            error=fields.get("error"),
            status=fields.get("status"),
        )


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)
