"""Tests for FIFO dispatch through the per-provider queue."""

from __future__ import annotations

import asyncio

import pytest

from orchestrator.errors import QueueClosedError
from orchestrator.key_pool import Credential, KeyPool
from orchestrator.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from orchestrator.request_queue import RequestQueue
from orchestrator.retry import RetryExecutor


def _queue(clock, *, spacing: float = 0.0) -> RequestQueue:
    pool = KeyPool(["key-1", "key-2"], clock=clock)
    limiter = SlidingWindowRateLimiter(
        RateLimitConfig(max_per_window=100, window_seconds=60.0, min_interval_seconds=spacing),
        clock=clock,
        sleep=clock.sleep,
    )
    return RequestQueue(limiter, RetryExecutor(pool, sleep=clock.sleep), name="test")


def test_tickets_run_in_order_one_at_a_time(clock) -> None:
    """Operations start in enqueue order and never overlap."""

    async def _run() -> None:
        queue = _queue(clock)
        started: list[int] = []
        active = 0
        peak = 0

        def make(index: int):
            async def operation(credential: Credential) -> str:
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                started.append(index)
                await asyncio.sleep(0)
                active -= 1
                return f"result-{index}"

            return operation

        futures = [queue.enqueue(make(index)) for index in range(5)]
        assert queue.draining

        results = await asyncio.gather(*futures)

        assert results == [f"result-{index}" for index in range(5)]
        assert started == list(range(5))
        assert peak == 1
        await asyncio.sleep(0)
        assert not queue.draining
        assert queue.stats()["succeeded"] == 5

    asyncio.run(_run())


def test_failure_settles_only_its_ticket(clock) -> None:
    """A fatal error rejects its own future and the queue keeps draining."""

    async def _run() -> None:
        queue = _queue(clock)

        async def broken(credential: Credential) -> str:
            raise ValueError("bad input")

        async def fine(credential: Credential) -> str:
            return "fine"

        first = queue.enqueue(broken)
        second = queue.enqueue(fine)

        with pytest.raises(ValueError):
            await first
        assert await second == "fine"
        assert queue.stats()["failed"] == 1

    asyncio.run(_run())


def test_cancelled_ticket_is_skipped(clock) -> None:
    """A ticket abandoned before dispatch consumes no rate-limit slot."""

    async def _run() -> None:
        queue = _queue(clock, spacing=5.0)
        calls: list[str] = []

        def make(label: str):
            async def operation(credential: Credential) -> str:
                calls.append(label)
                return label

            return operation

        first = queue.enqueue(make("first"))
        abandoned = queue.enqueue(make("abandoned"))
        last = queue.enqueue(make("last"))
        abandoned.cancel()

        assert await first == "first"
        assert await last == "last"
        assert calls == ["first", "last"]
        assert queue.stats()["skipped"] == 1
        assert queue.rate_limiter.stats()["dispatched"] == 2

    asyncio.run(_run())


def test_close_fails_pending_and_rejects_new(clock) -> None:
    """Closing the queue settles every pending ticket with QueueClosedError."""

    async def _run() -> None:
        queue = _queue(clock)
        gate = asyncio.Event()

        async def blocked(credential: Credential) -> str:
            await gate.wait()
            return "never"

        in_flight = queue.enqueue(blocked)
        waiting = queue.enqueue(blocked)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await queue.close()

        for future in (in_flight, waiting):
            with pytest.raises(QueueClosedError):
                await future
        with pytest.raises(QueueClosedError):
            queue.enqueue(blocked)

    asyncio.run(_run())


def test_operation_raising_cancelled_fails_only_its_ticket(clock) -> None:
    """A CancelledError from inside an operation does not stop the worker."""

    async def _run() -> None:
        queue = _queue(clock)

        async def aborted(credential: Credential) -> str:
            raise asyncio.CancelledError()

        async def fine(credential: Credential) -> str:
            return "fine"

        first = queue.enqueue(aborted)
        second = queue.enqueue(fine)

        with pytest.raises(asyncio.CancelledError):
            await first
        assert await second == "fine"
        await asyncio.sleep(0)
        assert not queue.draining
        assert queue.stats()["failed"] == 1
        assert queue.stats()["succeeded"] == 1

        assert await queue.enqueue(fine) == "fine"

    asyncio.run(_run())
