"""Request orchestration for rate-limited, multi-key AI providers."""

from .analyzer import AnalysisResult, DocumentAnalyzer
from .cache import CacheConfig, CacheEntry, LRUCache, ResultCache
from .config import OrchestratorSettings, ProviderSettings, load_orchestrator_config
from .errors import (
    ConfigError,
    ErrorClass,
    ErrorClassifier,
    OrchestratorError,
    QueueClosedError,
    UnknownProviderError,
)
from .fingerprint import make_fingerprint
from .key_pool import Credential, KeyPool, mask_key
from .provider import ProviderFacade
from .rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from .registry import ProviderRegistry, build_registry
from .request_queue import RequestQueue, Ticket
from .retry import RetryExecutor, RetryPolicy, compute_backoff

__all__ = [
    "AnalysisResult",
    "DocumentAnalyzer",
    "CacheConfig",
    "CacheEntry",
    "LRUCache",
    "ResultCache",
    "OrchestratorSettings",
    "ProviderSettings",
    "load_orchestrator_config",
    "ConfigError",
    "ErrorClass",
    "ErrorClassifier",
    "OrchestratorError",
    "QueueClosedError",
    "UnknownProviderError",
    "make_fingerprint",
    "Credential",
    "KeyPool",
    "mask_key",
    "ProviderFacade",
    "RateLimitConfig",
    "SlidingWindowRateLimiter",
    "ProviderRegistry",
    "build_registry",
    "RequestQueue",
    "Ticket",
    "RetryExecutor",
    "RetryPolicy",
    "compute_backoff",
]
