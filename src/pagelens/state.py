"""Application state container.

AppState is created once at server startup (inside the FastMCP lifespan context
manager) and injected into every tool handler via the MCP Context object. It
owns the only shared mutable state in the process: the page cache, the rate
limiter's window and the audit log.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from pagelens.audit import AuditLog
    from pagelens.config import Settings
    from pagelens.orchestrator import BatchRunner
    from pagelens.protocols import CacheProtocol, FetcherProtocol
    from pagelens.ratelimit import SlidingWindowRateLimiter


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings
    cache: CacheProtocol
    fetcher: FetcherProtocol
    rate_limiter: SlidingWindowRateLimiter
    audit_log: AuditLog
    batch_runner: BatchRunner
    http_client: httpx.AsyncClient | None = None

    # Per-tool call counts for session_stats
    tool_calls: Counter[str] = field(default_factory=Counter)
