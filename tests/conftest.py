"""Shared test fixtures for the pagelens test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from pagelens.audit import AuditLog
from pagelens.cache import PageCache

if TYPE_CHECKING:
    from pathlib import Path


class FakeClock:
    """Manually advanced UTC clock for cache tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Manually advanced float clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> PageCache:
    """Page cache with a 10 minute TTL driven by a fake clock."""
    return PageCache(ttl_seconds=600, max_size=1000, clock=clock)


@pytest.fixture()
def audit_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "debug.jsonl"


@pytest.fixture()
def audit_log(audit_path: Path) -> AuditLog:
    return AuditLog(audit_path, max_bytes=50 * 1024 * 1024)


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()
