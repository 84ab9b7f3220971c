"""Wire-level integration tests for MCP error envelope behavior."""

from __future__ import annotations

import json
import subprocess
import sys


def _call_tool(env: dict[str, str], name: str, arguments: dict) -> dict:
    """Run one tools/call against a fresh stdio server and return its result."""
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

    messages = [
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
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        },
    ]
    for message in messages:
        proc.stdin.write(json.dumps(message) + "\n")
    proc.stdin.flush()

    # Keep stdin open until the tool answers; closing it early drops in-flight responses
    tool_response: dict | None = None
    while tool_response is None:
        line = proc.stdout.readline()
        if not line:
            break
        if line.strip():
            response = json.loads(line)
            if response.get("id") == 2:
                tool_response = response

    proc.stdin.close()
    proc.stderr.read()  # Drain for clean process shutdown on all platforms
    proc.wait(timeout=10)

    assert tool_response is not None, "server exited before answering tools/call"
    return tool_response["result"]


def test_invalid_range_serializes_to_structured_tool_error(
    subprocess_env: dict[str, str],
) -> None:
    result = _call_tool(
        subprocess_env,
        "get_page_content_range",
        {"url": "https://example.com", "start_line": 10, "end_line": 5},
    )

    assert result["isError"] is True
    text_payload = result["content"][0]["text"]
    assert "Error executing tool" not in text_payload

    parsed = json.loads(text_payload)
    assert parsed["status"] == "error"
    assert parsed["error_details"]["kind"] == "INVALID_INPUT"
    assert parsed["error_details"]["recoverable"] is False
    assert "end_line must be >= start_line" in parsed["error"]


def test_unreachable_unlocker_serializes_to_upstream_error(
    subprocess_env: dict[str, str],
) -> None:
    result = _call_tool(
        subprocess_env,
        "scrape_as_html",
        {"url": "https://example.com"},
    )

    assert result["isError"] is True
    parsed = json.loads(result["content"][0]["text"])
    assert parsed["error_details"]["kind"] == "UPSTREAM_ERROR"
    assert parsed["error_details"]["recoverable"] is True
