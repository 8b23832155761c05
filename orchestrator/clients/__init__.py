"""Inference client adapters."""

from .base import BaseInferenceClient, InferenceResponse
from .openai_client import ClientConfig, OpenAICompatibleClient

__all__ = [
    "BaseInferenceClient",
    "InferenceResponse",
    "ClientConfig",
    "OpenAICompatibleClient",
]
