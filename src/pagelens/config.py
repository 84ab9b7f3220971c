"""Configuration loading.

Three sources, first match wins:
  1. Environment variables, nested with ``__`` (PAGELENS__CACHE__TTL_SECONDS=300)
  2. pagelens.yaml, from the working directory or the platform config dir
  3. Field defaults

Settings are read once at startup; there is no runtime reconfiguration. A
malformed rate limit or out-of-range value fails validation before the
server starts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from pagelens.ratelimit import RateLimitSpec, parse_rate_limit

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("pagelens")


def _find_config_file() -> str | None:
    """Return the path of the first pagelens.yaml found, or None."""
    candidates = [
        Path("pagelens.yaml"),
        Path(platformdirs.user_config_dir("pagelens")) / "pagelens.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "0.0.0.0"
    port: int = 3000
    auth_enabled: bool = False
    auth_key: str = ""


class UnlockerSettings(BaseModel):
    api_token: str = ""
    api_url: str = "https://api.brightdata.com"
    zone: str = "mcp_unlocker"
    # Zone name the usage-limit guidance applies to (the free-tier default zone)
    free_tier_zone: str = "mcp_unlocker"
    timeout_seconds: float = 60.0


class CacheSettings(BaseModel):
    ttl_seconds: float = Field(default=600.0, gt=0)
    max_size: int = Field(default=1000, ge=1)
    sweep_interval_seconds: float = Field(default=120.0, gt=0)


class BatchSettings(BaseModel):
    timeout_ms: int = Field(default=50_000, ge=1)
    preview_lines: int = Field(default=500, ge=1)
    # False keeps late fetches running so their cache writes still land
    cancel_on_timeout: bool = False


class RateLimitSettings(BaseModel):
    spec: RateLimitSpec | None = None

    @field_validator("spec", mode="before")
    @classmethod
    def parse_spec(cls, v: Any) -> RateLimitSpec | None:
        if v is None or v == "":
            return None
        if isinstance(v, RateLimitSpec):
            return v
        return parse_rate_limit(str(v))


class AuditLogSettings(BaseModel):
    # None disables the audit log; relative paths live under the data dir
    path: str | None = None
    max_size_mb: float = Field(default=50.0, gt=0)

    @field_validator("path")
    @classmethod
    def resolve_path(cls, v: str | None) -> str | None:
        if not v:
            return None
        path = Path(v).expanduser()
        if not path.is_absolute():
            path = Path(_DEFAULT_DATA_DIR) / path
        return str(path)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # PAGELENS__SERVER__PORT=9090 sets server.port
        env_prefix="PAGELENS__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    unlocker: UnlockerSettings = UnlockerSettings()
    cache: CacheSettings = CacheSettings()
    batch: BatchSettings = BatchSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    audit_log: AuditLogSettings = AuditLogSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            # no .env or secrets-dir sources
        )
