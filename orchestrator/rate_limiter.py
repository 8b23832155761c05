"""Async sliding-window rate limiting for one provider instance."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
import logging
import time
from typing import Any, Awaitable, Callable


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RateLimitConfig:
    """Window cap plus minimum spacing between dispatches."""

    max_per_window: int = 12
    window_seconds: float = 60.0
    min_interval_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_per_window <= 0:
            raise ValueError("max_per_window must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must not be negative")


class SlidingWindowRateLimiter:
    """Rolling-window limiter with a minimum inter-request spacing.

    The window cap bounds throughput over ``window_seconds``; the spacing
    bound smooths bursts inside the window. ``await_slot`` records the
    dispatch, so one call corresponds to exactly one outbound request.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or RateLimitConfig()
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._last_dispatch: float | None = None
        self._dispatched = 0
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        window = self.config.window_seconds
        while self._timestamps and now - self._timestamps[0] >= window:
            self._timestamps.popleft()

    async def await_slot(self) -> float:
        """Wait until both constraints allow a dispatch, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.config.max_per_window:
                    break

                wait_seconds = max(0.001, self._timestamps[0] + self.config.window_seconds - now)
                LOGGER.info(
                    "Rate window full for %s (%d/%d); waiting %.1fs",
                    self.name,
                    len(self._timestamps),
                    self.config.max_per_window,
                    wait_seconds,
                )
                await self._sleep(wait_seconds)

            if self._last_dispatch is not None:
                min_wait = self.config.min_interval_seconds - (self._clock() - self._last_dispatch)
                if min_wait > 0:
                    LOGGER.debug("Spacing requests for %s; waiting %.2fs", self.name, min_wait)
                    await self._sleep(min_wait)

            now = self._clock()
            self._last_dispatch = now
            self._timestamps.append(now)
            self._dispatched += 1
            return now

    def stats(self) -> dict[str, Any]:
        """Return window configuration and current occupancy."""
        self._prune(self._clock())
        return {
            "name": self.name,
            "max_per_window": self.config.max_per_window,
            "window_seconds": self.config.window_seconds,
            "min_interval_seconds": self.config.min_interval_seconds,
            "in_window": len(self._timestamps),
            "dispatched": self._dispatched,
            "last_dispatch": self._last_dispatch,
        }
