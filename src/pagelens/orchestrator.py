"""Concurrent batch execution with per-item timeouts.

Each item in a batch is raced against its own timer. The batch returns once
every item has settled (success, failure or timeout) and results are placed
by input index, never by completion order.

By default a timeout only stops waiting: the underlying task keeps running,
so a slow fetch can still populate the cache for the next call. Detached
tasks are held in ``BatchRunner`` until they finish so they are not garbage
collected mid-flight, and their late failures are logged.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from pagelens.errors import ErrorCode, PageLensError, unexpected_error_result

if TYPE_CHECKING:
    from collections.abc import Coroutine, Sequence

log = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 50_000


@dataclass
class BatchItem:
    """One unit of work in a batch.

    ``operation`` produces the item's success dict. ``identity`` holds the
    fields identifying the item (``url``, ``query`` ...) and is merged into
    error and timeout results.
    """

    operation: Coroutine[Any, Any, dict]
    identity: dict[str, Any]


def timeout_result(identity: dict[str, Any], timeout_ms: int) -> dict:
    message = f"Request timed out after {timeout_ms / 1000:g} seconds"
    return {
        **identity,
        "status": "error",
        "error": message,
        "error_details": {
            "message": message,
            "kind": ErrorCode.TIMEOUT,
            "status": None,
            "timeout_ms": timeout_ms,
            "suggestion": "Retry the item on its own; the page may now be cached.",
            "recoverable": True,
        },
    }


def error_result(identity: dict[str, Any], exc: BaseException) -> dict:
    if isinstance(exc, PageLensError):
        return {**identity, **exc.to_result()}
    return {**identity, **unexpected_error_result(exc)}


class BatchRunner:
    """Runs batches and owns the tasks that outlive their timeout."""

    def __init__(self, *, cancel_on_timeout: bool = False) -> None:
        self._cancel_on_timeout = cancel_on_timeout
        self._detached: set[asyncio.Task[dict]] = set()

    @property
    def detached_count(self) -> int:
        return len(self._detached)

    async def run_batch(
        self,
        items: Sequence[BatchItem],
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> list[dict]:
        """Run every item concurrently; return one result per item, in input order."""
        return list(await asyncio.gather(*(self._run_item(item, timeout_ms) for item in items)))

    async def _run_item(self, item: BatchItem, timeout_ms: int) -> dict:
        task = asyncio.ensure_future(item.operation)
        try:
            # shield: the timer firing must not cancel the operation itself
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout_ms / 1000)
        except TimeoutError:
            self._on_timeout(task, item.identity)
            return timeout_result(item.identity, timeout_ms)
        except asyncio.CancelledError:
            task.cancel()
            raise
        except Exception as exc:
            log.warning(
                "batch_item_failed",
                **item.identity,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return error_result(item.identity, exc)

    def _on_timeout(self, task: asyncio.Task[dict], identity: dict[str, Any]) -> None:
        log.warning("batch_item_timeout", **identity, cancelled=self._cancel_on_timeout)
        if self._cancel_on_timeout:
            task.cancel()
            return
        self._detached.add(task)
        task.add_done_callback(lambda t: self._on_detached_done(t, identity))

    def _on_detached_done(self, task: asyncio.Task[dict], identity: dict[str, Any]) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("batch_item_late_failure", **identity, error=str(exc))
        else:
            log.info("batch_item_late_completion", **identity)

    async def aclose(self) -> None:
        """Cancel detached tasks. Called from the lifespan on shutdown."""
        for task in list(self._detached):
            task.cancel()
        if self._detached:
            await asyncio.gather(*self._detached, return_exceptions=True)
        self._detached.clear()
