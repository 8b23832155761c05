"""Document analysis routed through the provider registry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import mimetypes
from typing import Sequence

from .clients import BaseInferenceClient
from .fingerprint import make_fingerprint
from .key_pool import Credential
from .registry import ProviderRegistry


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisResult:
    """Outcome of analyzing one document."""

    name: str
    provider: str
    fingerprint: str
    text: str | None
    batch_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DocumentAnalyzer:
    """Fingerprints a document, then asks the chosen provider facade for a result.

    Results are cached per fingerprint; passing a ``batch_id`` files them under
    that group so ``finalize_batch`` can drop them once the batch is delivered.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry

    async def analyze(
        self,
        content: bytes,
        prompt: str,
        *,
        name: str = "document",
        kind: str = "document",
        provider: str | None = None,
        batch_id: str | None = None,
        mime_type: str | None = None,
    ) -> AnalysisResult:
        facade = self.registry.get(provider)
        client = self.registry.client(facade.name)
        fingerprint = make_fingerprint(content, prompt, kind)
        mime = mime_type or mimetypes.guess_type(name)[0]

        async def operation(credential: Credential) -> str:
            return await self._generate(client, credential, prompt, content, mime)

        text = await facade.invoke(fingerprint, operation, group_id=batch_id)
        return AnalysisResult(
            name=name,
            provider=facade.name,
            fingerprint=fingerprint,
            text=text,
            batch_id=batch_id,
        )

    async def analyze_batch(
        self,
        documents: Sequence[tuple[str, bytes]],
        prompt: str,
        *,
        kind: str = "document",
        provider: str | None = None,
        batch_id: str | None = None,
    ) -> list[AnalysisResult]:
        """Analyze ``(name, content)`` pairs; failures are reported per document."""
        outcomes = await asyncio.gather(
            *(
                self.analyze(content, prompt, name=name, kind=kind, provider=provider, batch_id=batch_id)
                for name, content in documents
            ),
            return_exceptions=True,
        )

        facade_name = self.registry.get(provider).name
        results: list[AnalysisResult] = []
        for (name, content), outcome in zip(documents, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                LOGGER.error("Analysis failed for %s: %s", name, outcome)
                results.append(
                    AnalysisResult(
                        name=name,
                        provider=facade_name,
                        fingerprint=make_fingerprint(content, prompt, kind),
                        text=None,
                        batch_id=batch_id,
                        error=f"{type(outcome).__name__}: {outcome}",
                    )
                )
            else:
                results.append(outcome)

        ok = sum(1 for result in results if result.ok)
        LOGGER.info("Batch %s analyzed: %d/%d succeeded", batch_id, ok, len(results))
        return results

    def finalize_batch(self, batch_id: str) -> int:
        """Forget every cached result filed under ``batch_id``."""
        removed = self.registry.invalidate_group(batch_id)
        LOGGER.info("Finalized batch %s (%d cached results dropped)", batch_id, removed)
        return removed

    async def _generate(
        self,
        client: BaseInferenceClient,
        credential: Credential,
        prompt: str,
        content: bytes,
        mime_type: str | None,
    ) -> str:
        response = await client.generate(
            api_key=credential.value,
            prompt=prompt,
            content=content,
            mime_type=mime_type,
        )
        LOGGER.debug(
            "%s answered in %.0fms (%d in / %d out tokens)",
            response.provider,
            response.latency_ms,
            response.input_tokens,
            response.output_tokens,
        )
        if not response.text:
            raise ValueError(f"Empty response from {response.provider}")
        return response.text
