"""Round-robin credential pool with key-level cool-down."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Iterable

from .errors import ErrorClass


LOGGER = logging.getLogger(__name__)

DEFAULT_DISABLE_SECONDS = 60.0


def mask_key(value: str | None) -> str:
    """Render a secret safely for log lines."""
    if not value:
        return "undefined"
    if len(value) <= 10:
        return value[:2] + "..."
    return f"{value[:6]}...{value[-4:]}"


@dataclass(slots=True)
class Credential:
    """One API key plus its usage bookkeeping."""

    value: str = field(repr=False)
    usage_count: int = 0
    error_count: int = 0
    disabled_until: float | None = None

    @property
    def masked(self) -> str:
        return mask_key(self.value)

    def is_disabled(self, now: float) -> bool:
        return self.disabled_until is not None and self.disabled_until > now

    def __repr__(self) -> str:
        return (
            f"Credential({self.masked}, usage_count={self.usage_count}, "
            f"error_count={self.error_count}, disabled_until={self.disabled_until})"
        )


class KeyPool:
    """Owns a provider's credentials and picks the next usable one.

    Disabled keys are re-enabled lazily: ``disabled_until`` is compared with
    the clock on every ``select()``. When every key is cooling down the pool
    fails open and hands back the key that has been disabled the longest.
    """

    def __init__(
        self,
        keys: Iterable[str],
        *,
        provider: str = "default",
        disable_seconds: float = DEFAULT_DISABLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.disable_seconds = disable_seconds
        self._clock = clock
        self._credentials = [Credential(value=key) for key in keys if key and key.strip()]
        if not self._credentials:
            raise ValueError(f"KeyPool for provider '{provider}' needs at least one credential")
        self._cursor = -1

        LOGGER.info("Key pool ready provider=%s keys=%d", provider, len(self._credentials))

    @property
    def credentials(self) -> list[Credential]:
        return list(self._credentials)

    @property
    def cursor(self) -> int:
        return self._cursor

    def select(self) -> Credential:
        """Advance the cursor and return the next non-disabled credential."""
        now = self._clock()
        size = len(self._credentials)

        for _ in range(size):
            self._cursor = (self._cursor + 1) % size
            credential = self._credentials[self._cursor]
            if credential.is_disabled(now):
                continue
            credential.disabled_until = None
            return self._use(credential)

        # Every key is cooling down: reactivate the one disabled longest ago.
        index, credential = min(
            enumerate(self._credentials),
            key=lambda item: item[1].disabled_until if item[1].disabled_until is not None else float("-inf"),
        )
        LOGGER.warning(
            "All %d %s keys are disabled; reactivating %s early",
            size,
            self.provider,
            credential.masked,
        )
        credential.disabled_until = None
        self._cursor = index
        return self._use(credential)

    def _use(self, credential: Credential) -> Credential:
        credential.usage_count += 1
        LOGGER.debug(
            "Using %s key #%d %s (%d uses)",
            self.provider,
            self._cursor + 1,
            credential.masked,
            credential.usage_count,
        )
        return credential

    def report_failure(self, credential: Credential, error_class: ErrorClass) -> None:
        """Count a failure against ``credential``; quota errors cool it down."""
        credential.error_count += 1
        if error_class is ErrorClass.RATE_LIMIT:
            credential.disabled_until = self._clock() + self.disable_seconds
            LOGGER.warning(
                "Disabled %s key %s for %.0fs after rate-limit error (%d errors)",
                self.provider,
                credential.masked,
                self.disable_seconds,
                credential.error_count,
            )
        else:
            LOGGER.info(
                "Error on %s key %s class=%s (%d errors)",
                self.provider,
                credential.masked,
                error_class.value,
                credential.error_count,
            )

    def stats(self) -> dict[str, Any]:
        """Return pool counters for dashboards."""
        now = self._clock()
        disabled = sum(1 for c in self._credentials if c.is_disabled(now))
        return {
            "provider": self.provider,
            "total": len(self._credentials),
            "active": len(self._credentials) - disabled,
            "disabled": disabled,
            "usage_total": sum(c.usage_count for c in self._credentials),
            "error_total": sum(c.error_count for c in self._credentials),
            "cursor": self._cursor,
        }
