"""Wire-level integration tests for MCP transport contract."""

from __future__ import annotations

import json
import subprocess
import sys
from typing import TYPE_CHECKING

from pagelens import __version__

if TYPE_CHECKING:
    from pathlib import Path

EXPECTED_TOOLS = {
    "get_page_previews",
    "get_page_content_range",
    "grep_page_content",
    "search_engine",
    "scrape_as_html",
    "extract",
    "session_stats",
}


def _run_mcp_exchange(env: dict[str, str], messages: list[dict]) -> list[dict]:
    proc = subprocess.Popen(
        [sys.executable, "-m", "pagelens.server"],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )

    assert proc.stdin is not None
    assert proc.stdout is not None
    assert proc.stderr is not None

    for message in messages:
        proc.stdin.write(json.dumps(message) + "\n")
    proc.stdin.flush()

    # Read until every request id has been answered before closing stdin:
    # the stdio transport tears down its write stream once stdin closes and
    # would drop responses from handlers still running.
    expected_ids = frozenset(msg["id"] for msg in messages if "id" in msg)
    responses: list[dict] = []
    seen_ids: set = set()
    while seen_ids < expected_ids:
        line = proc.stdout.readline()
        if not line:
            break
        stripped = line.strip()
        if stripped:
            resp = json.loads(stripped)
            responses.append(resp)
            if resp.get("id") is not None:
                seen_ids.add(resp["id"])

    proc.stdin.close()
    proc.stderr.read()
    proc.wait(timeout=10)
    proc.stdout.close()
    proc.stderr.close()

    return responses


def _handshake() -> list[dict]:
    return [
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-11-25",
                "capabilities": {},
                "clientInfo": {"name": "pytest", "version": "0"},
            },
        },
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
    ]


def _by_id(responses: list[dict], request_id: int) -> dict:
    return next(r for r in responses if r.get("id") == request_id)


def test_initialize_reports_server_identity(subprocess_env: dict[str, str]) -> None:
    responses = _run_mcp_exchange(subprocess_env, _handshake())

    server_info = _by_id(responses, 1)["result"]["serverInfo"]
    assert server_info["name"] == "pagelens"
    assert server_info["version"] == __version__


def test_tools_list_exposes_every_tool(subprocess_env: dict[str, str]) -> None:
    messages = [*_handshake(), {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}]
    responses = _run_mcp_exchange(subprocess_env, messages)

    tools = {tool["name"]: tool for tool in _by_id(responses, 2)["result"]["tools"]}
    assert set(tools) == EXPECTED_TOOLS
    range_schema = tools["get_page_content_range"]["inputSchema"]
    assert set(range_schema["required"]) == {"url", "start_line", "end_line"}


def test_tool_calls_are_audited(subprocess_env: dict[str, str], tmp_path: Path) -> None:
    messages = [
        *_handshake(),
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "session_stats", "arguments": {}},
        },
    ]
    responses = _run_mcp_exchange(subprocess_env, messages)

    result = _by_id(responses, 2)["result"]
    assert result.get("isError") is not True

    audit_lines = (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()
    types = [json.loads(line)["type"] for line in audit_lines]
    assert "MCP_TOOL_REQUEST_session_stats" in types
    assert "MCP_TOOL_RESPONSE_session_stats" in types
