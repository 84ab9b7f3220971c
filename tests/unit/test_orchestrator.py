"""Unit tests for pagelens.orchestrator."""

from __future__ import annotations

import asyncio
import time

from pagelens.errors import ErrorCode, PageLensError
from pagelens.orchestrator import BatchItem, BatchRunner, timeout_result


async def _succeed(url: str, delay: float = 0.0) -> dict:
    await asyncio.sleep(delay)
    return {"url": url, "status": "ok"}


async def _hang(release: asyncio.Event, url: str) -> dict:
    await release.wait()
    return {"url": url, "status": "ok"}


async def _fail_upstream(url: str) -> dict:
    raise PageLensError(
        code=ErrorCode.UPSTREAM_ERROR,
        message="HTTP 404: not found",
        suggestion="",
        status_code=404,
    )


async def _fail_unexpected(url: str) -> dict:
    raise RuntimeError("boom")


def _item(coro, url: str) -> BatchItem:
    return BatchItem(operation=coro, identity={"url": url})


# ---------------------------------------------------------------------------
# run_batch
# ---------------------------------------------------------------------------


class TestRunBatch:
    async def test_results_in_input_order(self) -> None:
        runner = BatchRunner()
        items = [
            _item(_succeed("a", delay=0.05), "a"),
            _item(_succeed("b", delay=0.0), "b"),
            _item(_succeed("c", delay=0.02), "c"),
        ]
        results = await runner.run_batch(items, timeout_ms=5000)
        assert [r["url"] for r in results] == ["a", "b", "c"]
        assert all(r["status"] == "ok" for r in results)

    async def test_hung_item_times_out_alone(self) -> None:
        runner = BatchRunner()
        release = asyncio.Event()
        items = [
            _item(_succeed("u1"), "u1"),
            _item(_hang(release, "u2"), "u2"),
            _item(_succeed("u3"), "u3"),
        ]

        started = time.monotonic()
        results = await runner.run_batch(items, timeout_ms=100)
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert results[0] == {"url": "u1", "status": "ok"}
        assert results[2] == {"url": "u3", "status": "ok"}
        assert results[1]["url"] == "u2"
        assert results[1]["status"] == "error"
        assert results[1]["error"] == "Request timed out after 0.1 seconds"
        assert results[1]["error_details"]["kind"] == ErrorCode.TIMEOUT
        assert results[1]["error_details"]["timeout_ms"] == 100

        await runner.aclose()

    async def test_failures_do_not_cascade(self) -> None:
        runner = BatchRunner()
        items = [
            _item(_fail_upstream("bad"), "bad"),
            _item(_succeed("good"), "good"),
            _item(_fail_unexpected("worse"), "worse"),
        ]
        results = await runner.run_batch(items, timeout_ms=5000)

        assert results[0]["url"] == "bad"
        assert results[0]["error_details"]["kind"] == ErrorCode.UPSTREAM_ERROR
        assert results[0]["error_details"]["status"] == 404
        assert results[1]["status"] == "ok"
        assert results[2]["error"] == "boom"
        assert results[2]["error_details"]["kind"] == "RuntimeError"

    async def test_empty_batch(self) -> None:
        assert await BatchRunner().run_batch([], timeout_ms=100) == []


# ---------------------------------------------------------------------------
# Timed-out tasks
# ---------------------------------------------------------------------------


class TestTimedOutTasks:
    async def test_detached_task_keeps_running(self) -> None:
        runner = BatchRunner()
        release = asyncio.Event()
        finished: list[str] = []

        async def slow() -> dict:
            await release.wait()
            finished.append("done")
            return {"url": "slow", "status": "ok"}

        await runner.run_batch([_item(slow(), "slow")], timeout_ms=50)
        assert runner.detached_count == 1

        release.set()
        for _ in range(10):
            await asyncio.sleep(0)
            if runner.detached_count == 0:
                break

        assert finished == ["done"]
        assert runner.detached_count == 0

    async def test_cancel_on_timeout(self) -> None:
        runner = BatchRunner(cancel_on_timeout=True)
        cancelled = asyncio.Event()

        async def hang() -> dict:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return {}

        results = await runner.run_batch([_item(hang(), "x")], timeout_ms=50)
        await asyncio.wait_for(cancelled.wait(), timeout=1)

        assert results[0]["error_details"]["kind"] == ErrorCode.TIMEOUT
        assert runner.detached_count == 0

    async def test_aclose_cancels_detached(self) -> None:
        runner = BatchRunner()
        await runner.run_batch([_item(_hang(asyncio.Event(), "x"), "x")], timeout_ms=20)
        assert runner.detached_count == 1

        await runner.aclose()
        assert runner.detached_count == 0


class TestTimeoutResult:
    def test_whole_seconds_formatted_without_decimals(self) -> None:
        result = timeout_result({"query": "q"}, 50_000)
        assert result["query"] == "q"
        assert result["error"] == "Request timed out after 50 seconds"
        assert result["error_details"]["recoverable"] is True
