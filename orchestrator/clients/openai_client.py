"""OpenAI-compatible inference client for OpenAI, Gemini and OpenRouter."""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
import hashlib
import logging
import random
import time
from typing import Any

from ..key_pool import mask_key
from .base import BaseInferenceClient, InferenceResponse


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientConfig:
    """Transport settings shared by every SDK client of one provider."""

    timeout_seconds: int = 120
    max_sdk_retries: int = 0


def build_messages(prompt: str, content: bytes | None, mime_type: str | None) -> list[dict[str, Any]]:
    """Build a single user message carrying the prompt and optional document."""
    if content is None:
        return [{"role": "user", "content": prompt}]

    mime = mime_type or "application/octet-stream"
    if mime.startswith("text/"):
        text = content.decode("utf-8", errors="replace")
        return [{"role": "user", "content": f"{prompt}\n\n{text}"}]

    data_url = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"
    if mime.startswith("image/"):
        part: dict[str, Any] = {"type": "image_url", "image_url": {"url": data_url}}
    else:
        part = {"type": "file", "file": {"filename": "document", "file_data": data_url}}
    return [{"role": "user", "content": [{"type": "text", "text": prompt}, part]}]


class OpenAICompatibleClient(BaseInferenceClient):
    """Async wrapper around the OpenAI SDK's Chat Completions API.

    One ``AsyncOpenAI`` instance is kept per API key. SDK-level retries are
    disabled by default; retrying is the orchestration layer's job.
    """

    def __init__(
        self,
        provider: str,
        api_model: str,
        *,
        base_url: str | None = None,
        extra_headers: dict[str, str] | None = None,
        dry_run: bool = False,
        config: ClientConfig | None = None,
    ) -> None:
        super().__init__(provider=provider, api_model=api_model, dry_run=dry_run)
        self.base_url = base_url
        self.extra_headers = extra_headers or {}
        self.config = config or ClientConfig()
        self._clients: dict[str, Any] = {}

    def _client_for(self, api_key: str) -> Any:
        client = self._clients.get(api_key)
        if client is not None:
            return client

        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise RuntimeError("openai package is not installed") from exc

        kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": self.config.timeout_seconds,
            "max_retries": self.config.max_sdk_retries,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.extra_headers:
            kwargs["default_headers"] = self.extra_headers

        client = AsyncOpenAI(**kwargs)
        self._clients[api_key] = client
        LOGGER.debug("Created %s SDK client for key %s", self.provider, mask_key(api_key))
        return client

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
        if self.dry_run:
            return self._mock_response(prompt=prompt, content=content)

        if not api_key:
            raise ValueError(f"Missing API key for {self.provider} client")

        client = self._client_for(api_key)
        started = time.perf_counter()
        response = await client.chat.completions.create(
            model=self.api_model,
            messages=build_messages(prompt, content, mime_type),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000

        text = response.choices[0].message.content or "" if response.choices else ""
        usage = response.usage
        input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "completion_tokens", 0) or 0)

        return InferenceResponse(
            text=text.strip(),
            provider=self.provider,
            model_name=self.api_model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=elapsed_ms,
            raw={"id": getattr(response, "id", None)},
        )

    def _mock_response(self, *, prompt: str, content: bytes | None) -> InferenceResponse:
        digest = hashlib.sha256((content or b"") + prompt.encode("utf-8")).hexdigest()
        rnd = random.Random(int(digest[:8], 16))
        head = " ".join(prompt.split()[:40])
        text = f"[DRY-RUN:{self.provider}] {head} ({digest[:12]})".strip()
        return InferenceResponse(
            text=text,
            provider=self.provider,
            model_name=self.api_model,
            input_tokens=max(32, len(prompt) // 4 + len(content or b"") // 4),
            output_tokens=max(64, len(text) // 3 + rnd.randint(0, 8)),
            latency_ms=1.0,
            raw={"dry_run": True},
        )

    async def close(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            close_fn = getattr(client, "close", None)
            if close_fn is None:
                continue
            maybe_coro = close_fn()
            if asyncio.iscoroutine(maybe_coro):
                await maybe_coro
