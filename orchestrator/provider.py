"""Per-provider facade composing pool, limiter, retries, queue and cache."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import random
import time
from typing import Any, Awaitable, Callable, Iterable

from .cache import CacheConfig, ResultCache
from .errors import ErrorClassifier
from .key_pool import DEFAULT_DISABLE_SECONDS, KeyPool
from .rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from .request_queue import RequestQueue
from .retry import Operation, RetryExecutor, RetryPolicy


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class InFlightCall:
    """A queued ticket shared by every caller asking for the same fingerprint."""

    future: asyncio.Future[str]
    waiters: int = 0
    group_ids: list[str] = field(default_factory=list)


class ProviderFacade:
    """Uniform ``invoke`` entry point for one AI provider.

    A cache hit returns without touching the queue. A miss enqueues the
    operation; the result is cached before the caller's future resolves, so a
    later call with the same fingerprint never reaches the provider. Calls for
    a fingerprint that is already in flight share that call's outcome, and the
    result is filed under every group id those callers passed.
    """

    def __init__(
        self,
        name: str,
        *,
        key_pool: KeyPool,
        rate_limiter: SlidingWindowRateLimiter,
        retry_executor: RetryExecutor,
        cache: ResultCache | None = None,
    ) -> None:
        self.name = name
        self.key_pool = key_pool
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor
        self.cache = cache if cache is not None else ResultCache()
        self.queue = RequestQueue(rate_limiter, retry_executor, name=name)
        self._in_flight: dict[str, InFlightCall] = {}
        self.coalesced = 0

    @classmethod
    def create(
        cls,
        name: str,
        keys: Iterable[str],
        *,
        rate_limit: RateLimitConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        disable_seconds: float = DEFAULT_DISABLE_SECONDS,
        classifier: ErrorClassifier | None = None,
        cache: ResultCache | None = None,
        cache_config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> "ProviderFacade":
        """Wire a facade from plain settings, sharing one clock and sleep."""
        key_pool = KeyPool(keys, provider=name, disable_seconds=disable_seconds, clock=clock)
        rate_limiter = SlidingWindowRateLimiter(rate_limit, name=name, clock=clock, sleep=sleep)
        retry_executor = RetryExecutor(
            key_pool,
            policy=retry_policy,
            classifier=classifier,
            sleep=sleep,
            rng=rng,
        )
        if cache is None:
            cache = ResultCache(cache_config, clock=clock)
        return cls(
            name,
            key_pool=key_pool,
            rate_limiter=rate_limiter,
            retry_executor=retry_executor,
            cache=cache,
        )

    async def invoke(self, fingerprint: str, operation: Operation, group_id: str | None = None) -> str:
        """Return the cached result for ``fingerprint`` or compute it once.

        Every caller awaits the shared ticket through a shield, so one caller
        being cancelled never cancels the others. The ticket itself is
        cancelled only when its last waiting caller gives up.
        """
        cached = self.cache.get(fingerprint)
        if cached is not None:
            if group_id is not None:
                self.cache.add_to_group(fingerprint, group_id)
            return cached

        call = self._in_flight.get(fingerprint)
        if call is None:
            call = InFlightCall(future=self.queue.enqueue(operation))
            self._in_flight[fingerprint] = call
            call.future.add_done_callback(lambda done: self._settle(fingerprint, call))
        else:
            self.coalesced += 1
            LOGGER.debug("Joining in-flight %s request key=%s...", self.name, fingerprint[:16])

        if group_id is not None and group_id not in call.group_ids:
            call.group_ids.append(group_id)

        call.waiters += 1
        try:
            return await asyncio.shield(call.future)
        finally:
            call.waiters -= 1
            if call.waiters == 0 and not call.future.done():
                # Nobody is waiting any more; the queue skips it if not yet dispatched.
                call.future.cancel()

    def _settle(self, fingerprint: str, call: InFlightCall) -> None:
        if self._in_flight.get(fingerprint) is call:
            del self._in_flight[fingerprint]
        future = call.future
        if future.cancelled() or future.exception() is not None:
            return

        primary, *others = call.group_ids or [None]
        self.cache.put(fingerprint, future.result(), primary)
        for group_id in others:
            self.cache.add_to_group(fingerprint, group_id)

    def invalidate_group(self, group_id: str) -> int:
        return self.cache.invalidate_group(group_id)

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of every component's counters for dashboards."""
        return {
            "provider": self.name,
            "key_pool": self.key_pool.stats(),
            "rate_window": self.rate_limiter.stats(),
            "retry": self.retry_executor.stats(),
            "queue": {**self.queue.stats(), "in_flight": len(self._in_flight), "coalesced": self.coalesced},
            "cache": self.cache.stats(),
        }

    async def close(self) -> None:
        await self.queue.close()
        LOGGER.info("Provider facade %s closed", self.name)
