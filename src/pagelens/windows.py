"""Read-only windows over normalised page content.

Pure functions: no knowledge of AppState, MCP, or I/O. Every operation splits
content with ``normalizer.split_lines`` so line numbers agree across preview,
range and grep.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pagelens.errors import ErrorCode, PageLensError
from pagelens.normalizer import split_lines

DEFAULT_CHAR_BUDGET = 100_000
CHAR_BUDGET_MARGIN = 1000
GREP_CONTEXT_LINES = 25

# /pattern/flags with JavaScript-style flags, as agents tend to write them
_DELIMITED_PATTERN_RE = re.compile(r"^/(.+)/([gimsuy]*)$", re.DOTALL)
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
# (?<name>...) but not the lookbehinds (?<=...) and (?<!...)
_JS_NAMED_GROUP_RE = re.compile(r"\(\?<(?![=!])")


@dataclass(frozen=True)
class PreviewWindow:
    content: str
    lines_returned: int
    total_lines: int
    chars: int
    truncated: bool
    char_limit_reached: bool


@dataclass(frozen=True)
class RangeWindow:
    content: str
    start_line: int
    end_line: int
    total_lines: int
    truncated: bool

    @property
    def lines_returned(self) -> int:
        return max(0, self.end_line - self.start_line + 1)


@dataclass(frozen=True)
class GrepMatch:
    match_number: int
    line_number: int
    matched_text: str
    context_start_line: int
    context_end_line: int
    context: str


def preview(
    content: str,
    max_lines: int,
    char_budget: int = DEFAULT_CHAR_BUDGET,
) -> PreviewWindow:
    """Return the leading lines of ``content`` within both budgets.

    Each line costs ``len(line) + 1`` characters against ``char_budget``.
    """
    lines = split_lines(content)
    selected: list[str] = []
    chars = 0

    for line in lines:
        if len(selected) >= max_lines or chars + len(line) + 1 > char_budget:
            break
        selected.append(line)
        chars += len(line) + 1

    return PreviewWindow(
        content="\n".join(selected),
        lines_returned=len(selected),
        total_lines=len(lines),
        chars=chars,
        truncated=len(lines) > len(selected),
        char_limit_reached=chars >= char_budget - CHAR_BUDGET_MARGIN,
    )


def line_range(content: str, start_line: int, end_line: int) -> RangeWindow:
    """Return lines ``start_line``..``end_line`` (1-based, inclusive), clamped."""
    lines = split_lines(content)
    total = len(lines)
    start = max(1, start_line)
    end = min(total, end_line)

    return RangeWindow(
        content="\n".join(lines[start - 1 : end]),
        start_line=start,
        end_line=end,
        total_lines=total,
        truncated=end_line > total,
    )


def compile_pattern(pattern: str, case_sensitive: bool = True) -> re.Pattern[str]:
    """Compile a grep pattern.

    ``/body/flags`` is a delimited expression whose flags override
    ``case_sensitive``. Anything else is compiled as-is. ``g``, ``u`` and
    ``y`` are accepted and ignored: every match is always collected.
    Syntax is Python's ``re``; JavaScript named groups ``(?<name>...)`` are
    rewritten to ``(?P<name>...)``.
    """
    delimited = _DELIMITED_PATTERN_RE.match(pattern)
    if delimited is not None:
        body, flag_chars = delimited.groups()
        flags = 0
        for char in flag_chars:
            flags |= _FLAG_MAP.get(char, 0)
    else:
        body, flags = pattern, 0 if case_sensitive else re.IGNORECASE

    try:
        return re.compile(_JS_NAMED_GROUP_RE.sub("(?P<", body), flags)
    except re.error as exc:
        raise PageLensError(
            code=ErrorCode.INVALID_PATTERN,
            message=f"Invalid regex pattern: {exc}",
            suggestion="Fix the regular expression or escape special characters.",
            recoverable=False,
        ) from exc


def grep(content: str, regex: re.Pattern[str], max_matches: int) -> list[GrepMatch]:
    """Find up to ``max_matches`` matches, line by line, with surrounding context."""
    lines = split_lines(content)
    total = len(lines)
    matches: list[GrepMatch] = []

    for index, line in enumerate(lines):
        if len(matches) >= max_matches:
            break
        for match in regex.finditer(line):
            if len(matches) >= max_matches:
                break
            line_number = index + 1
            context_start = max(1, line_number - GREP_CONTEXT_LINES)
            context_end = min(total, line_number + GREP_CONTEXT_LINES)
            context = [
                f"> {lines[j]}" if j == index else lines[j]
                for j in range(context_start - 1, context_end)
            ]
            matches.append(
                GrepMatch(
                    match_number=len(matches) + 1,
                    line_number=line_number,
                    matched_text=match.group(0),
                    context_start_line=context_start,
                    context_end_line=context_end,
                    context="\n".join(context),
                )
            )

    return matches
