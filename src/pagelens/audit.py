"""Size-bounded JSONL audit log.

Every tool call and every unlocker HTTP exchange is recorded as one JSON
object per line (``jq``-friendly), tagged with a correlation id so a single
request's trail can be reconstructed.

The writer is best-effort. Failures are logged through structlog and never
reach the operation being audited. When an append would push the file past
``max_bytes``, the file is rewritten without its oldest quarter of records
first.
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger()

ROTATE_FRACTION = 0.25
MIN_RECORDS_TO_ROTATE = 10
MAX_BODY_CHARS = 50_000


def format_body(body: str) -> str:
    """Pretty-print a JSON body, or the JSON ``data:`` lines of an SSE body."""
    try:
        return json.dumps(json.loads(body), indent=2)
    except ValueError:
        pass

    if "event: message" not in body or "data: " not in body:
        return body

    formatted: list[str] = []
    for line in body.split("\n"):
        if not line.startswith("data: "):
            formatted.append(line)
            continue
        try:
            parsed = json.loads(line[len("data: ") :])
        except ValueError:
            formatted.append(line)
            continue
        formatted.append("data:")
        formatted.extend("  " + json_line for json_line in json.dumps(parsed, indent=2).split("\n"))
    return "\n".join(formatted)


class AuditLog:
    """Append-only JSONL writer with count-based rotation under a byte ceiling."""

    def __init__(self, path: str | Path | None, max_bytes: int) -> None:
        self._path = Path(path).expanduser() if path else None
        self._max_bytes = max_bytes

    @property
    def enabled(self) -> bool:
        return self._path is not None

    @property
    def path(self) -> Path | None:
        return self._path

    def append(self, type: str, request_id: str | None, data: dict[str, Any]) -> None:
        """Write one record. Never raises."""
        if self._path is None:
            return

        try:
            line = self._serialise(type, request_id, data)
            self._rotate_if_needed(len(line.encode("utf-8")))
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(line)
        except (OSError, ValueError):
            log.warning("audit_log_write_error", path=str(self._path), type=type, exc_info=True)

    def _serialise(self, type: str, request_id: str | None, data: dict[str, Any]) -> str:
        payload = dict(data)
        body = payload.get("body")
        if isinstance(body, str):
            formatted = format_body(body)
            if len(formatted) > MAX_BODY_CHARS:
                formatted = formatted[:MAX_BODY_CHARS] + "\n... (truncated for log size)"
            payload["body"] = formatted

        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "type": type,
            "requestId": request_id,
            "data": payload,
        }
        return json.dumps(record, default=str) + "\n"

    def _rotate_if_needed(self, incoming_bytes: int) -> None:
        """Drop the oldest records when the next append would exceed the ceiling.

        Rotation problems are logged and the append goes ahead regardless.
        """
        if self._path is None:
            return
        try:
            current_size = self._path.stat().st_size
        except FileNotFoundError:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            return

        if current_size + incoming_bytes <= self._max_bytes:
            return

        try:
            # Records are never decoded here, so corrupt lines are carried over as-is
            records = [line for line in self._path.read_bytes().split(b"\n") if line.strip()]
            if len(records) <= MIN_RECORDS_TO_ROTATE:
                return

            remove_count = int(len(records) * ROTATE_FRACTION)
            kept = records[remove_count:]
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            tmp_path.write_bytes(b"\n".join(kept) + b"\n")
            os.replace(tmp_path, self._path)
            log.info("audit_log_rotated", path=str(self._path), removed=remove_count)
        except (OSError, ValueError):
            log.warning("audit_log_rotate_error", path=str(self._path), exc_info=True)


class AuditLogProcessor:
    """structlog processor that mirrors log events into the audit log.

    Events emitted by the audit log itself are skipped, otherwise a failing
    write would log a warning that triggers another failing write.
    """

    def __init__(self, audit_log: AuditLog) -> None:
        self._audit_log = audit_log

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event = str(event_dict.get("event", ""))
        if self._audit_log.enabled and not event.startswith("audit_log_"):
            self._audit_log.append(
                "LOG",
                event_dict.get("request_id"),
                {key: value for key, value in event_dict.items() if key != "request_id"},
            )
        return event_dict
