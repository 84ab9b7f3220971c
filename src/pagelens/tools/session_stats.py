"""Tool handler for session_stats."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagelens.state import AppState


async def handle(state: AppState) -> dict:
    """Report tool usage since the server started."""
    lines = ["Tool calls this session:"]
    lines.extend(f"- {name} tool: called {calls} times" for name, calls in state.tool_calls.items())

    return {
        "status": "ok",
        "session_calls": sum(state.tool_calls.values()),
        "tool_calls": dict(state.tool_calls),
        "cache_entries": len(state.cache),
        "summary": "\n".join(lines),
    }
