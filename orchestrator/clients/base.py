"""Abstract async inference client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class InferenceResponse:
    """Normalized inference response payload."""

    text: str
    provider: str
    model_name: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw: dict[str, Any]


class BaseInferenceClient(ABC):
    """Base class for provider inference clients.

    Clients hold no credential of their own: the key chosen by the provider's
    key pool is passed to every ``generate`` call.
    """

    def __init__(self, provider: str, api_model: str, dry_run: bool = False) -> None:
        self.provider = provider
        self.api_model = api_model
        self.dry_run = dry_run

    @abstractmethod
    async def generate(
        self,
        *,
        api_key: str,
        prompt: str,
        content: bytes | None = None,
        mime_type: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> InferenceResponse:
        """Run one inference call with ``api_key``."""

    async def close(self) -> None:
        """Optional resource cleanup hook."""
        return None
