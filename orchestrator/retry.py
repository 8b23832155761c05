"""Failure-class-aware retry engine with key rotation and backoff."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import Any, Awaitable, Callable

from .errors import ErrorClass, ErrorClassifier
from .key_pool import Credential, KeyPool


LOGGER = logging.getLogger(__name__)

Operation = Callable[[Credential], Awaitable[str]]


@dataclass(slots=True)
class RetryPolicy:
    """Attempt bound and delay parameters for one provider."""

    max_attempts: int = 5
    rate_limit_delay_seconds: float = 2.0
    backoff_base_seconds: float = 30.0
    backoff_cap_seconds: float = 300.0
    jitter_ratio: float = 0.25
    suggested_delay_growth: float = 1.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


def compute_backoff(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """Exponential backoff with up to ``jitter_ratio`` random jitter, capped."""
    rng = rng or random
    delay = policy.backoff_base_seconds * (2**attempt)
    jitter = rng.uniform(0.0, policy.jitter_ratio * delay)
    return min(delay + jitter, policy.backoff_cap_seconds)


class RetryExecutor:
    """Runs an operation against the key pool until it succeeds or gives up.

    Rate-limit failures cool the used key down and retry soon with a fresh
    key; overload failures back off exponentially on the same key; anything
    else propagates on first occurrence. The operation is re-invoked in full
    on every attempt, so it must be safe to repeat.
    """

    def __init__(
        self,
        key_pool: KeyPool,
        *,
        policy: RetryPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.key_pool = key_pool
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self._sleep = sleep
        self._rng = rng or random.Random()

        self.attempts = 0
        self.rate_limit_retries = 0
        self.overload_retries = 0
        self.fatal_failures = 0
        self.exhausted = 0

    def overload_delay(self, exc: BaseException, overload_attempt: int) -> float:
        """Delay before retrying an overloaded provider."""
        suggested = self.classifier.suggested_delay(exc)
        if suggested is not None:
            delay = suggested * (self.policy.suggested_delay_growth**overload_attempt)
            return min(delay, self.policy.backoff_cap_seconds)
        return compute_backoff(overload_attempt, self.policy, self._rng)

    async def run(self, operation: Operation, max_attempts: int | None = None) -> str:
        """Execute ``operation`` with retries; re-raise the last error when exhausted."""
        limit = max_attempts if max_attempts is not None else self.policy.max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be at least 1")

        credential = self.key_pool.select()
        overload_attempt = 0
        attempt = 0
        while True:
            attempt += 1
            self.attempts += 1
            try:
                return await operation(credential)
            except Exception as exc:
                error_class = self.classifier.classify(exc)
                self.key_pool.report_failure(credential, error_class)

                if error_class is ErrorClass.FATAL:
                    self.fatal_failures += 1
                    raise

                if attempt >= limit:
                    self.exhausted += 1
                    LOGGER.error(
                        "Giving up on %s after %d/%d attempts (%s): %s",
                        self.key_pool.provider,
                        attempt,
                        limit,
                        error_class.value,
                        exc,
                    )
                    raise

                if error_class is ErrorClass.RATE_LIMIT:
                    self.rate_limit_retries += 1
                    credential = self.key_pool.select()
                    delay = self.policy.rate_limit_delay_seconds
                    LOGGER.warning(
                        "Rate limited on %s; rotated to %s, attempt %d/%d in %.1fs",
                        self.key_pool.provider,
                        credential.masked,
                        attempt + 1,
                        limit,
                        delay,
                    )
                else:
                    self.overload_retries += 1
                    delay = self.overload_delay(exc, overload_attempt)
                    overload_attempt += 1
                    LOGGER.warning(
                        "Provider %s overloaded; attempt %d/%d in %.1fs",
                        self.key_pool.provider,
                        attempt + 1,
                        limit,
                        delay,
                    )

                await self._sleep(delay)

    def stats(self) -> dict[str, Any]:
        """Return retry counters."""
        return {
            "max_attempts": self.policy.max_attempts,
            "attempts": self.attempts,
            "rate_limit_retries": self.rate_limit_retries,
            "overload_retries": self.overload_retries,
            "fatal_failures": self.fatal_failures,
            "exhausted": self.exhausted,
        }
