"""Unit tests for package version resolution and where the version surfaces."""

from __future__ import annotations

import importlib.metadata
import importlib.util
from pathlib import Path

import pytest

import pagelens
from pagelens.config import UnlockerSettings
from pagelens.unlocker import build_http_client

_INIT_PATH = Path(__file__).resolve().parents[2] / "src" / "pagelens" / "__init__.py"


class TestVersion:
    def test_matches_installed_metadata_or_fallback(self) -> None:
        try:
            expected = importlib.metadata.version("pagelens")
        except importlib.metadata.PackageNotFoundError:
            expected = "0.0.0+unknown"
        assert pagelens.__version__ == expected

    def test_missing_metadata_warns_and_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _not_installed(_name: str) -> str:
            raise importlib.metadata.PackageNotFoundError

        monkeypatch.setattr(importlib.metadata, "version", _not_installed)
        module_spec = importlib.util.spec_from_file_location("pagelens_fallback", _INIT_PATH)
        assert module_spec is not None
        assert module_spec.loader is not None
        module = importlib.util.module_from_spec(module_spec)

        with pytest.warns(RuntimeWarning, match="Package metadata for 'pagelens' not found"):
            module_spec.loader.exec_module(module)

        assert module.__version__ == "0.0.0+unknown"

    async def test_unlocker_user_agent_carries_version(self) -> None:
        async with build_http_client(UnlockerSettings()) as client:
            assert client.headers["user-agent"] == f"pagelens/{pagelens.__version__}"
