from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_PATTERN = "INVALID_PATTERN"
    RATE_LIMITED = "RATE_LIMITED"
    SAMPLING_UNAVAILABLE = "SAMPLING_UNAVAILABLE"


class PageLensError(Exception):
    """Raised by tool handlers for all expected failure conditions.

    Caught by server.py and serialised into the MCP error response. Batch
    handlers catch it per item and fold it into that item's result instead,
    so one failing URL never fails the whole call.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable
        self.status_code = status_code

    def to_result(self) -> dict:
        """Return the ``status``/``error``/``error_details`` result fields."""
        return {
            "status": "error",
            "error": self.message,
            "error_details": {
                "message": self.message,
                "kind": self.code,
                "status": self.status_code,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            },
        }


def unexpected_error_result(exc: BaseException) -> dict:
    """Result fields for an exception that is not a PageLensError."""
    message = str(exc) or "Unknown error occurred"
    return {
        "status": "error",
        "error": message,
        "error_details": {
            "message": message,
            "kind": type(exc).__name__,
            "status": None,
            "suggestion": "",
            "recoverable": False,
        },
    }
