"""Per-provider FIFO request queue drained by a single worker task."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
import logging
import time
from typing import Any

from .errors import QueueClosedError
from .rate_limiter import SlidingWindowRateLimiter
from .retry import Operation, RetryExecutor


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Ticket:
    """One pending outbound call and the future its caller awaits."""

    operation: Operation
    future: asyncio.Future[str]
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    """Serializes every outbound call for one provider instance.

    Enqueuing while idle starts the worker; enqueuing while draining only
    appends. The worker waits for a rate-limit slot, runs the ticket through
    the retry executor and settles its future before taking the next one, so
    a ticket stuck in retries holds back every younger ticket.
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter,
        retry_executor: RetryExecutor,
        *,
        name: str = "default",
    ) -> None:
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor
        self.name = name
        self._tickets: deque[Ticket] = deque()
        self._draining = False
        self._closed = False
        self._worker: asyncio.Task[None] | None = None
        self._current: Ticket | None = None

        self.dispatched = 0
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def pending(self) -> int:
        return len(self._tickets)

    def enqueue(self, operation: Operation) -> asyncio.Future[str]:
        """Append a ticket and return the future settled with its outcome."""
        if self._closed:
            raise QueueClosedError(f"Request queue '{self.name}' is closed")

        loop = asyncio.get_running_loop()
        ticket = Ticket(operation=operation, future=loop.create_future())
        self._tickets.append(ticket)

        if not self._draining:
            self._draining = True
            self._worker = loop.create_task(self._drain(), name=f"request-queue:{self.name}")
        return ticket.future

    async def _drain(self) -> None:
        try:
            while self._tickets:
                ticket = self._tickets.popleft()
                if ticket.future.done():
                    # Caller gave up before dispatch.
                    self.skipped += 1
                    continue

                self._current = ticket
                await self.rate_limiter.await_slot()
                self.dispatched += 1
                waited = time.monotonic() - ticket.enqueued_at
                LOGGER.debug("Dispatching %s ticket after %.2fs in queue (%d behind)", self.name, waited, len(self._tickets))

                try:
                    result = await self.retry_executor.run(ticket.operation)
                except asyncio.CancelledError as exc:
                    if self._closed or _worker_cancelled():
                        raise
                    # The operation raised CancelledError itself; only its ticket fails.
                    self._settle_error(ticket, exc)
                except Exception as exc:
                    self._settle_error(ticket, exc)
                else:
                    self.succeeded += 1
                    if not ticket.future.done():
                        ticket.future.set_result(result)
                self._current = None
        except BaseException:
            if not self._closed:
                self._fail_unsettled(f"Request queue '{self.name}' worker stopped")
            raise
        finally:
            self._draining = False

    def _settle_error(self, ticket: Ticket, exc: BaseException) -> None:
        self.failed += 1
        if not ticket.future.done():
            ticket.future.set_exception(exc)

    def _fail_unsettled(self, message: str) -> None:
        unsettled = [self._current] if self._current is not None else []
        unsettled.extend(self._tickets)
        self._tickets.clear()
        self._current = None
        for ticket in unsettled:
            if not ticket.future.done():
                ticket.future.set_exception(QueueClosedError(message))

    async def close(self) -> None:
        """Stop the worker and fail every ticket that never settled."""
        self._closed = True
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        self._fail_unsettled(f"Request queue '{self.name}' closed")
        LOGGER.info("Request queue %s closed", self.name)

    def stats(self) -> dict[str, Any]:
        """Return queue state and counters."""
        return {
            "name": self.name,
            "pending": len(self._tickets),
            "draining": self._draining,
            "dispatched": self.dispatched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


def _worker_cancelled() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
