from __future__ import annotations

from datetime import datetime
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_URL_LENGTH = 2048
MAX_RANGE_LINES = 5000


def _validate_url(v: str) -> str:
    v = v.strip()
    if len(v) > MAX_URL_LENGTH:
        raise ValueError(f"url must be at most {MAX_URL_LENGTH} characters")
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"url must be an absolute http(s) URL: {v!r}")
    return v


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class PagePreviewsInput(BaseModel):
    urls: list[str] = Field(min_length=1, max_length=10)

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        return [_validate_url(url) for url in v]


class PageRangeInput(BaseModel):
    url: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)

    @model_validator(mode="after")
    def validate_span(self) -> PageRangeInput:
        if self.end_line < self.start_line:
            raise ValueError("end_line must be >= start_line")
        if self.end_line - self.start_line + 1 > MAX_RANGE_LINES:
            raise ValueError(f"Cannot request more than {MAX_RANGE_LINES} lines at once")
        return self


class GrepPageInput(BaseModel):
    url: str
    pattern: str = Field(min_length=1)
    max_matches: int = Field(default=20, ge=1, le=100)
    case_sensitive: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)


class SearchQuery(BaseModel):
    query: str = Field(min_length=1)
    engine: Literal["google", "bing", "yandex"] = "google"
    cursor: str | None = None

    @field_validator("cursor")
    @classmethod
    def validate_cursor(cls, v: str | None) -> str | None:
        if v is not None and not v.isdigit():
            raise ValueError("cursor must be a non-negative page number")
        return v


class SearchEngineInput(BaseModel):
    queries: list[SearchQuery] = Field(min_length=1, max_length=5)


class ScrapeInput(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)


class ExtractInput(BaseModel):
    url: str
    extraction_prompt: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class PagePreviewItem(BaseModel):
    url: str
    status: Literal["ok"] = "ok"
    from_cache: bool
    fetched_at: datetime
    start_line: int
    end_line: int
    preview_lines: int
    total_lines: int
    truncated: bool
    char_limit_reached: bool
    content: str
    note: str


class PagePreviewsOutput(BaseModel):
    tool: Literal["get_page_previews"] = "get_page_previews"
    status: Literal["ok"] = "ok"
    now: datetime
    ttl_ms: int
    max_line_length: int
    timeout_ms: int
    urls_processed: int
    results: list[dict]


class PageRangeOutput(BaseModel):
    url: str
    status: Literal["ok"] = "ok"
    from_cache: bool
    fetched_at: datetime
    start_line: int
    end_line: int
    total_lines: int
    lines_returned: int
    truncated: bool
    max_line_length: int
    content: str


class GrepMatchOutput(BaseModel):
    match_number: int
    line_number: int
    matched_text: str
    context_start_line: int
    context_end_line: int
    context: str


class GrepPageOutput(BaseModel):
    url: str
    status: Literal["ok"] = "ok"
    from_cache: bool
    fetched_at: datetime
    pattern: str
    total_lines: int
    matches_found: int
    max_matches_limit: int
    results: list[GrepMatchOutput]


class SearchResultItem(BaseModel):
    query: str
    engine: str
    cursor: str | None
    status: Literal["ok"] = "ok"
    cleaned: bool
    content: str


class SearchEngineOutput(BaseModel):
    tool: Literal["search_engine"] = "search_engine"
    status: Literal["ok"] = "ok"
    queries_processed: int
    timeout_ms: int
    results: list[dict]
