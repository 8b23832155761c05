"""Tests for table-driven error classification."""

from __future__ import annotations

from orchestrator.errors import ErrorClass, ErrorClassifier


class StatusError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: dict | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CodeError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class FakeResponse:
    def __init__(self, status_code: int, headers: dict[str, str]) -> None:
        self.status_code = status_code
        self.headers = headers


class ResponseError(Exception):
    def __init__(self, message: str, response: FakeResponse) -> None:
        super().__init__(message)
        self.response = response


def test_status_codes_take_precedence() -> None:
    """HTTP status decides the class before any message text is read."""
    classifier = ErrorClassifier()

    assert classifier.classify(StatusError("boom", status_code=429)) is ErrorClass.RATE_LIMIT
    assert classifier.classify(StatusError("quota exceeded", status_code=503)) is ErrorClass.OVERLOAD
    assert classifier.classify(StatusError("bad request", status_code=400)) is ErrorClass.FATAL


def test_provider_codes_are_matched() -> None:
    """Provider error codes on the exception or in its body are recognized."""
    classifier = ErrorClassifier()

    assert classifier.classify(CodeError("x", "RESOURCE_EXHAUSTED")) is ErrorClass.RATE_LIMIT
    assert classifier.classify(CodeError("x", "UNAVAILABLE")) is ErrorClass.OVERLOAD
    body = {"error": {"type": "overloaded_error", "message": "busy"}}
    assert classifier.classify(StatusError("x", body=body)) is ErrorClass.OVERLOAD


def test_message_markers_as_last_resort() -> None:
    """Plain exceptions fall back to marker phrases; unknown text is fatal."""
    classifier = ErrorClassifier()

    assert classifier.classify(RuntimeError("Too Many Requests")) is ErrorClass.RATE_LIMIT
    assert classifier.classify(RuntimeError("The model is overloaded")) is ErrorClass.OVERLOAD
    assert classifier.classify(ValueError("invalid image payload")) is ErrorClass.FATAL


def test_custom_tables() -> None:
    """Tables supplied at construction replace the defaults."""
    classifier = ErrorClassifier(status_codes={500: ErrorClass.OVERLOAD}, provider_codes={}, message_markers=())

    assert classifier.classify(StatusError("x", status_code=500)) is ErrorClass.OVERLOAD
    assert classifier.classify(StatusError("quota", status_code=429)) is ErrorClass.FATAL


def test_suggested_delay_sources() -> None:
    """Retry hints are read from attributes, headers and message text."""
    classifier = ErrorClassifier()

    hinted = StatusError("slow down", status_code=503)
    hinted.retry_after = 12  # type: ignore[attr-defined]
    assert classifier.suggested_delay(hinted) == 12.0

    header = ResponseError("busy", FakeResponse(503, {"retry-after": "7"}))
    assert classifier.suggested_delay(header) == 7.0

    message = RuntimeError('503 {"error": {"details": [{"retryDelay":"21s"}]}}')
    assert classifier.suggested_delay(message) == 21.0
    assert classifier.suggested_delay(RuntimeError("please retry after 4s")) == 4.0
    assert classifier.suggested_delay(RuntimeError("no hint")) is None


def test_status_numbers_in_messages_need_context() -> None:
    """A quoted HTTP status classifies; a number inside document text does not."""
    classifier = ErrorClassifier()

    assert classifier.classify(RuntimeError("HTTP 429")) is ErrorClass.RATE_LIMIT
    assert classifier.classify(RuntimeError("[503 Service Busy] try later")) is ErrorClass.OVERLOAD
    assert classifier.classify(RuntimeError("Error code: 529 - busy")) is ErrorClass.OVERLOAD
    assert classifier.classify(RuntimeError("upstream returned status 503")) is ErrorClass.OVERLOAD
    assert classifier.classify(ValueError("invoice 14290 unreadable")) is ErrorClass.FATAL
    assert classifier.classify(ValueError("page 429 of the scan is blank")) is ErrorClass.FATAL
