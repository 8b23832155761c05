"""Tests for building and querying the provider registry."""

from __future__ import annotations

import asyncio

import pytest

from orchestrator.config import load_orchestrator_config
from orchestrator.errors import ConfigError, UnknownProviderError
from orchestrator.registry import build_registry


RAW_CONFIG = {
    "default_provider": "gemini",
    "providers": {
        "gemini": {"keys": ["g-1", "g-2"]},
        "openai": {"keys": ["o-1"]},
        "openroute": {},
    },
}


def _registry(clock, raw=RAW_CONFIG):
    settings = load_orchestrator_config(raw_config=raw, environ={})
    return build_registry(settings, dry_run=True, clock=clock, sleep=clock.sleep)


def test_providers_without_keys_are_skipped(clock) -> None:
    """Only providers with credentials get a facade."""
    registry = _registry(clock)

    assert registry.available_providers() == ["gemini", "openai"]
    with pytest.raises(UnknownProviderError):
        registry.require("openroute")


def test_unknown_name_falls_back_to_default(clock) -> None:
    """Lenient lookup returns the default provider for unknown names."""
    registry = _registry(clock)

    assert registry.get("mystery").name == "gemini"
    assert registry.get("OpenAI").name == "openai"
    assert registry.get().name == "gemini"


def test_default_provider_can_change(clock) -> None:
    """Switching the default ignores unknown providers."""
    registry = _registry(clock)

    registry.default_provider = "openai"
    assert registry.get().name == "openai"
    registry.default_provider = "openroute"
    assert registry.default_provider == "openai"


def test_default_without_keys_uses_first_available(clock) -> None:
    raw = {"default_provider": "openroute", "providers": RAW_CONFIG["providers"]}
    registry = _registry(clock, raw)

    assert registry.default_provider == "gemini"


def test_no_credentials_at_all_is_an_error(clock) -> None:
    settings = load_orchestrator_config(raw_config={"providers": {"gemini": {}}}, environ={})

    with pytest.raises(ConfigError):
        build_registry(settings, clock=clock, sleep=clock.sleep)


def test_facades_share_one_cache(clock) -> None:
    """Group invalidation reaches results stored through any provider."""
    registry = _registry(clock)
    gemini = registry.require("gemini")
    openai = registry.require("openai")
    assert gemini.cache is openai.cache

    gemini.cache.put("fp-1", "v", "batch")
    openai.cache.put("fp-2", "v", "batch")

    assert registry.invalidate_group("batch") == 2
    stats = registry.all_stats()
    assert set(stats["providers"]) == {"gemini", "openai"}
    assert stats["providers"]["gemini"]["cache"]["size"] == 0

    asyncio.run(registry.close())
