"""Integration test fixtures.

Provides a fully wired AppState whose unlocker points at ``https://api.test``
(mocked with respx in the tests) and an environment for subprocess-based
MCP wire tests.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from pagelens.config import Settings
from pagelens.server import build_audit_log, build_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from pagelens.state import AppState


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        unlocker={"api_url": "https://api.test", "api_token": "test-token"},
        audit_log={"path": str(tmp_path / "audit.jsonl")},
        batch={"timeout_ms": 5000},
    )


@pytest.fixture()
async def app_state(settings: Settings) -> AsyncIterator[AppState]:
    """Full AppState as the lifespan builds it, minus the sweep task."""
    state = build_state(settings, build_audit_log(settings))
    try:
        yield state
    finally:
        await state.batch_runner.aclose()
        if state.http_client is not None:
            await state.http_client.aclose()


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Overrides any local pagelens.yaml by forcing stdio transport and points
    the unlocker at an address that refuses connections.
    """
    env = os.environ.copy()
    env["PAGELENS__SERVER__TRANSPORT"] = "stdio"
    env["PAGELENS__UNLOCKER__API_URL"] = "http://127.0.0.1:1"
    env["PAGELENS__UNLOCKER__API_TOKEN"] = "test-token"
    env["PAGELENS__AUDIT_LOG__PATH"] = str(tmp_path / "audit.jsonl")
    env["PAGELENS__LOGGING__LEVEL"] = "WARNING"
    return env
