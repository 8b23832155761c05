"""Failure classification for upstream inference errors.

Upstream SDKs and HTTP clients do not share an exception hierarchy, so a
failure is classified by looking at the data it carries: an HTTP status code,
a provider-specific error code and, as a last resort, the message (an HTTP
status it quotes, such as "429 Too Many Requests", or a marker phrase). The
lookups are plain tables supplied at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any


class ErrorClass(str, Enum):
    """How the retry engine should react to a failure."""

    RATE_LIMIT = "rate_limit"
    OVERLOAD = "overload"
    FATAL = "fatal"


class OrchestratorError(Exception):
    """Base class for errors raised by the orchestration layer itself."""


class QueueClosedError(OrchestratorError):
    """Raised for tickets enqueued on, or still pending in, a closed queue."""


class ConfigError(OrchestratorError, ValueError):
    """Raised when provider or cache configuration is invalid."""


class UnknownProviderError(OrchestratorError, KeyError):
    """Raised by strict registry lookups for unregistered provider names."""


DEFAULT_STATUS_CODES: dict[int, ErrorClass] = {
    429: ErrorClass.RATE_LIMIT,
    503: ErrorClass.OVERLOAD,
    529: ErrorClass.OVERLOAD,
}

DEFAULT_PROVIDER_CODES: dict[str, ErrorClass] = {
    "resource_exhausted": ErrorClass.RATE_LIMIT,
    "rate_limit_exceeded": ErrorClass.RATE_LIMIT,
    "insufficient_quota": ErrorClass.RATE_LIMIT,
    "unavailable": ErrorClass.OVERLOAD,
    "overloaded_error": ErrorClass.OVERLOAD,
    "service_unavailable": ErrorClass.OVERLOAD,
}

# Checked in order; rate-limit markers win over overload markers.
DEFAULT_MESSAGE_MARKERS: tuple[tuple[str, ErrorClass], ...] = (
    ("too many requests", ErrorClass.RATE_LIMIT),
    ("quota", ErrorClass.RATE_LIMIT),
    ("rate limit", ErrorClass.RATE_LIMIT),
    ("service unavailable", ErrorClass.OVERLOAD),
    ("overloaded", ErrorClass.OVERLOAD),
)

# An HTTP status quoted by the SDK message ("429 Too Many Requests", "[503 ...]",
# "Error code: 429", "status: 503"), looked up in the status table.
_STATUS_IN_MESSAGE = re.compile(r"(?:^|\[|\bstatus|\bcode|\berror|\bhttp)[\s:=/(\[-]{0,3}([1-5]\d\d)(?!\d)")

_RETRY_DELAY_PATTERNS = (
    re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"'),
    re.compile(r"retry after (\d+(?:\.\d+)?)\s*s", re.IGNORECASE),
)


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _codes_of(exc: BaseException) -> list[str]:
    codes: list[str] = []
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        codes.append(code)
    elif isinstance(code, int):
        codes.append(str(code))

    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error", body)
        if isinstance(nested, dict):
            for key in ("status", "code", "type"):
                value = nested.get(key)
                if isinstance(value, str):
                    codes.append(value)
    return codes


@dataclass(slots=True)
class ErrorClassifier:
    """Table-driven mapping from a raised exception to an ``ErrorClass``."""

    status_codes: dict[int, ErrorClass] = field(default_factory=lambda: dict(DEFAULT_STATUS_CODES))
    provider_codes: dict[str, ErrorClass] = field(default_factory=lambda: dict(DEFAULT_PROVIDER_CODES))
    message_markers: tuple[tuple[str, ErrorClass], ...] = DEFAULT_MESSAGE_MARKERS

    def classify(self, exc: BaseException) -> ErrorClass:
        """Return the error class for ``exc``; unknown failures are fatal."""
        status = _status_of(exc)
        if status is not None and status in self.status_codes:
            return self.status_codes[status]

        for code in _codes_of(exc):
            found = self.provider_codes.get(code.lower())
            if found is not None:
                return found

        message = str(exc).strip().lower()
        for match in _STATUS_IN_MESSAGE.finditer(message):
            found = self.status_codes.get(int(match.group(1)))
            if found is not None:
                return found

        for marker, error_class in self.message_markers:
            if marker in message:
                return error_class
        return ErrorClass.FATAL

    def suggested_delay(self, exc: BaseException) -> float | None:
        """Return the provider's suggested retry delay in seconds, if any."""
        retry_after = getattr(exc, "retry_after", None)
        if isinstance(retry_after, (int, float)) and retry_after > 0:
            return float(retry_after)

        response = getattr(exc, "response", None)
        headers: Any = getattr(response, "headers", None)
        if headers is not None:
            raw = headers.get("retry-after")
            try:
                if raw is not None and float(raw) > 0:
                    return float(raw)
            except (TypeError, ValueError):
                pass

        message = str(exc)
        for pattern in _RETRY_DELAY_PATTERNS:
            match = pattern.search(message)
            if match:
                return float(match.group(1))
        return None
