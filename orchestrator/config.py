"""Provider and cache settings loaded from YAML plus environment credentials."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .cache import CacheConfig
from .errors import ConfigError
from .rate_limiter import RateLimitConfig
from .retry import RetryPolicy


DEFAULT_CONFIG_PATH = Path("config/providers.yaml")

# Known providers and their limits; YAML entries override field by field.
PROVIDER_DEFAULTS: dict[str, dict[str, Any]] = {
    "gemini": {
        "max_per_window": 12,
        "window_seconds": 60.0,
        "min_interval_seconds": 5.0,
        "max_retries": 5,
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "model": "gemini-2.5-flash",
    },
    "openai": {
        "max_per_window": 60,
        "window_seconds": 60.0,
        "min_interval_seconds": 1.0,
        "max_retries": 3,
        "model": "gpt-4o",
    },
    "openroute": {
        "max_per_window": 20,
        "window_seconds": 60.0,
        "min_interval_seconds": 3.0,
        "max_retries": 3,
        "base_url": "https://openrouter.ai/api/v1",
        "model": "nvidia/nemotron-nano-12b-v2-vl:free",
    },
}


@dataclass(slots=True)
class ProviderSettings:
    """Normalized settings for one provider facade."""

    name: str
    keys: list[str] = field(default_factory=list, repr=False)
    keys_env: str = ""
    window_seconds: float = 60.0
    max_per_window: int = 12
    min_interval_seconds: float = 5.0
    disable_seconds: float = 60.0
    max_retries: int = 5
    rate_limit_delay_seconds: float = 2.0
    backoff_base_seconds: float = 30.0
    backoff_cap_seconds: float = 300.0
    base_url: str | None = None
    model: str | None = None

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_per_window=self.max_per_window,
            window_seconds=self.window_seconds,
            min_interval_seconds=self.min_interval_seconds,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            rate_limit_delay_seconds=self.rate_limit_delay_seconds,
            backoff_base_seconds=self.backoff_base_seconds,
            backoff_cap_seconds=self.backoff_cap_seconds,
        )


@dataclass(slots=True)
class OrchestratorSettings:
    """Everything needed to build a provider registry."""

    providers: dict[str, ProviderSettings]
    cache: CacheConfig
    default_provider: str


def parse_keys(raw: str | None) -> list[str]:
    """Split a comma-separated key list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _normalize_provider(name: str, entry: Mapping[str, Any], environ: Mapping[str, str]) -> ProviderSettings:
    merged: dict[str, Any] = {**PROVIDER_DEFAULTS.get(name, {}), **entry}
    keys_env = str(merged.get("keys_env") or f"{name.upper()}_API_KEYS")

    raw_keys = merged.get("keys")
    if isinstance(raw_keys, str):
        keys = parse_keys(raw_keys)
    elif isinstance(raw_keys, list):
        keys = [str(key).strip() for key in raw_keys if str(key).strip()]
    else:
        keys = parse_keys(environ.get(keys_env))

    try:
        settings = ProviderSettings(
            name=name,
            keys=keys,
            keys_env=keys_env,
            window_seconds=float(merged.get("window_seconds", 60.0)),
            max_per_window=int(merged.get("max_per_window", 12)),
            min_interval_seconds=float(merged.get("min_interval_seconds", 5.0)),
            disable_seconds=float(merged.get("disable_seconds", 60.0)),
            max_retries=int(merged.get("max_retries", 5)),
            rate_limit_delay_seconds=float(merged.get("rate_limit_delay_seconds", 2.0)),
            backoff_base_seconds=float(merged.get("backoff_base_seconds", 30.0)),
            backoff_cap_seconds=float(merged.get("backoff_cap_seconds", 300.0)),
            base_url=str(merged["base_url"]) if merged.get("base_url") else None,
            model=str(merged["model"]) if merged.get("model") else None,
        )
        # Build once so invalid limits fail at load time.
        settings.rate_limit_config()
        settings.retry_policy()
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings for provider '{name}': {exc}") from exc

    if settings.disable_seconds < 0:
        raise ConfigError(f"Invalid settings for provider '{name}': disable_seconds must not be negative")
    return settings


def _normalize_cache(entry: Any) -> CacheConfig:
    if entry is None:
        return CacheConfig()
    if not isinstance(entry, dict):
        raise ConfigError("cache section must be a mapping")

    try:
        config = CacheConfig(
            max_size=int(entry.get("max_size", 100)),
            ttl_seconds=float(entry.get("ttl_seconds", 3600.0)),
            sweep_interval_seconds=float(entry.get("sweep_interval_seconds", 300.0)),
            enabled=bool(entry.get("enabled", True)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid cache settings: {exc}") from exc

    if config.max_size <= 0:
        raise ConfigError("cache.max_size must be positive")
    if config.ttl_seconds <= 0 or config.sweep_interval_seconds <= 0:
        raise ConfigError("cache ttl_seconds and sweep_interval_seconds must be positive")
    return config


def load_orchestrator_config(
    *,
    config_path: Path | None = None,
    raw_config: dict[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> OrchestratorSettings:
    """Load provider settings; credentials come from ``environ`` unless listed inline."""
    if raw_config is None:
        if config_path is None:
            raise ValueError("Either config_path or raw_config must be provided")
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8"))

    if not isinstance(raw_config, dict):
        raise ConfigError("Provider config must be a mapping")

    env = os.environ if environ is None else environ
    raw_providers = raw_config.get("providers")
    if not isinstance(raw_providers, dict) or not raw_providers:
        raise ConfigError("Provider config requires a non-empty 'providers' mapping")

    providers: dict[str, ProviderSettings] = {}
    for name, entry in raw_providers.items():
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            raise ConfigError(f"Provider '{name}' must be a mapping")
        provider_name = str(name).lower()
        providers[provider_name] = _normalize_provider(provider_name, entry, env)

    default_provider = str(raw_config.get("default_provider") or next(iter(providers))).lower()
    if default_provider not in providers:
        raise ConfigError(f"default_provider '{default_provider}' is not a configured provider")

    return OrchestratorSettings(
        providers=providers,
        cache=_normalize_cache(raw_config.get("cache")),
        default_provider=default_provider,
    )
