"""Text normalisation for fetched pages.

Raw markdown from the unlocker is normalised once, before it is cached:
image references are removed and long lines are hard-split so every window
operation works on lines of bounded width.
"""

from __future__ import annotations

import re

MAX_LINE_LENGTH = 250

_IMAGE_LINK_RE = re.compile(r"!\[[^\]]*\]\([^)]+\)")
_LINE_BREAK_RE = re.compile(r"\r?\n")


def strip_image_links(content: str) -> str:
    """Remove every markdown image reference ``![alt](target)``.

    Repeats until nothing matches: removing one reference can join its
    neighbours into a new one (``!![a](b)[c](d)``).
    """
    while True:
        stripped = _IMAGE_LINK_RE.sub("", content)
        if stripped == content:
            return stripped
        content = stripped


def split_lines(content: str) -> list[str]:
    """Split on ``\\n`` and ``\\r\\n``.

    Unlike ``str.splitlines`` this keeps a trailing empty line, so line numbers
    match what ``"\\n".join`` produced.
    """
    return _LINE_BREAK_RE.split(content)


def wrap_long_lines(content: str, width: int = MAX_LINE_LENGTH) -> str:
    """Hard-split every line longer than ``width`` into ``width``-sized chunks."""
    wrapped: list[str] = []
    for line in split_lines(content):
        if len(line) <= width:
            wrapped.append(line)
            continue
        wrapped.extend(line[i : i + width] for i in range(0, len(line), width))
    return "\n".join(wrapped)


def normalize(raw: str, width: int = MAX_LINE_LENGTH) -> str:
    """Strip images, then wrap. Idempotent."""
    # Images go first: a single data-URI image can be far wider than one line
    return wrap_long_lines(strip_image_links(raw), width)
