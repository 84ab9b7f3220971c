"""Streamable HTTP transport and its ASGI security layer."""

from __future__ import annotations

import re
import secrets
import uuid
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers
from starlette.responses import PlainTextResponse

from pagelens.audit import AuditLog

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP
    from starlette.types import ASGIApp, Receive, Scope, Send

    from pagelens.config import Settings

log = structlog.get_logger()

SUPPORTED_PROTOCOL_VERSIONS: frozenset[str] = frozenset({"2025-11-25", "2025-06-18", "2025-03-26"})

_LOCAL_ORIGIN_RE = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")
_REDACTED_HEADERS = frozenset({"authorization", "cookie"})


class MCPSecurityMiddleware:
    """Pure ASGI middleware guarding the ``/mcp`` endpoint.

    Every HTTP request is first written to the audit log (credentials
    redacted), then checked in order: bearer key when auth is enabled, a
    localhost-only ``Origin`` against DNS rebinding, and a known
    ``MCP-Protocol-Version``. Absent ``Origin`` and version headers pass.

    Pure ASGI rather than BaseHTTPMiddleware so SSE responses stream through
    unbuffered.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
        audit_log: AuditLog | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key
        self.audit_log = audit_log

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        self._record(scope, headers)

        rejection = self._reject(headers)
        if rejection is not None:
            log.info("http_request_rejected", path=scope.get("path"), status=rejection.status_code)
            await rejection(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _record(self, scope: Scope, headers: Headers) -> None:
        if self.audit_log is None:
            return
        self.audit_log.append(
            "INCOMING_HTTP_REQUEST",
            str(uuid.uuid4()),
            {
                "method": scope.get("method"),
                "url": scope.get("path"),
                "headers": {
                    name: "<redacted>" if name in _REDACTED_HEADERS else value
                    for name, value in headers.items()
                },
            },
        )

    def _reject(self, headers: Headers) -> PlainTextResponse | None:
        if self.auth_enabled and headers.get("authorization", "") != f"Bearer {self.auth_key}":
            return PlainTextResponse("Unauthorized", status_code=401)

        origin = headers.get("origin")
        if origin and _LOCAL_ORIGIN_RE.match(origin) is None:
            return PlainTextResponse("Forbidden", status_code=403)

        version = headers.get("mcp-protocol-version")
        if version and version not in SUPPORTED_PROTOCOL_VERSIONS:
            return PlainTextResponse(f"Unsupported protocol version: {version}", status_code=400)

        return None


def run_http_server(mcp: FastMCP, settings: Settings) -> None:
    """Serve the MCP app over Streamable HTTP until the process is stopped."""
    server = settings.server
    auth_key = server.auth_key or None

    if not server.auth_enabled:
        log.warning("http_auth_disabled", transport="http")
    elif auth_key is None:
        auth_key = secrets.token_urlsafe(32)
        log.warning("http_auth_key_auto_generated", transport="http", auth_key=auth_key)

    app = MCPSecurityMiddleware(
        mcp.streamable_http_app(),
        auth_enabled=server.auth_enabled,
        auth_key=auth_key,
        audit_log=AuditLog(
            settings.audit_log.path,
            int(settings.audit_log.max_size_mb * 1024 * 1024),
        ),
    )

    # structlog owns logging; uvicorn's default config would add a second format
    uvicorn.run(app, host=server.host, port=server.port, log_config=None)
