"""Search results extraction for Google SERP markdown.

Reduces a rendered results page to a de-duplicated list of ``(title, url)``
links. Pure business logic with no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pagelens.normalizer import strip_image_links

_LINK_BLOCK_RE = re.compile(r"\[((?:[^\[\]]|\n)+?)\]\((https?://[^\s)]+)\)")
_HEADING_TITLE_RE = re.compile(r"^###\s+(.+?)\s*$", re.MULTILINE)
_LINE_TITLE_RE = re.compile(r"^\s*([^\n]{3,200}?)\s*$", re.MULTILINE)
_GOOGLE_HOST_RE = re.compile(r"(^|\.)google\.", re.IGNORECASE)
_EMPHASIS_RE = re.compile(r"[_*`#]+")
_WHITESPACE_RE = re.compile(r"\s+")

TRACKING_PARAM_PREFIXES = (
    "utm_", "gclid", "fbclid", "ved", "sa", "usg", "ei", "oq", "hl", "source",
    "ictx", "tbm", "sca_esv", "ntc", "aep", "ptn", "ver", "hsh", "fclid",
)  # fmt: skip


@dataclass(frozen=True)
class SerpResult:
    title: str
    url: str


def canonicalize_url(url: str) -> str | None:
    """Strip tracking parameters and the fragment. ``None`` for unusable URLs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.hostname or _GOOGLE_HOST_RE.search(parts.hostname):
        return None

    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.startswith(TRACKING_PARAM_PREFIXES)
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), ""))


def _pick_title(block: str) -> str | None:
    match = _HEADING_TITLE_RE.search(block) or _LINE_TITLE_RE.search(block)
    if match is None:
        return None
    title = _WHITESPACE_RE.sub(" ", _EMPHASIS_RE.sub("", match.group(1))).strip()
    return title if len(title) >= 3 else None


def extract_serp_results(content: str) -> list[SerpResult]:
    """Extract result links in page order, de-duplicated by canonical URL."""
    seen: set[str] = set()
    results: list[SerpResult] = []

    for match in _LINK_BLOCK_RE.finditer(strip_image_links(content)):
        block, raw_url = match.groups()
        url = canonicalize_url(raw_url)
        if url is None or url in seen:
            continue
        title = _pick_title(block)
        if title is None:
            continue
        seen.add(url)
        results.append(SerpResult(title=title, url=url))

    return results


def format_results(results: list[SerpResult]) -> str:
    """Render results as a markdown bullet list of links."""
    return "\n".join(f"- [{r.title}]({r.url})" for r in results)
