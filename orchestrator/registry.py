"""Provider registry: one facade per configured provider."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable

from .cache import ResultCache
from .clients import BaseInferenceClient, OpenAICompatibleClient
from .config import OrchestratorSettings, ProviderSettings
from .errors import ConfigError, UnknownProviderError
from .provider import ProviderFacade


LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[ProviderSettings], BaseInferenceClient]


class ProviderRegistry:
    """Looks up provider facades and their inference clients by name."""

    def __init__(
        self,
        facades: dict[str, ProviderFacade],
        *,
        default_provider: str,
        clients: dict[str, BaseInferenceClient] | None = None,
    ) -> None:
        if not facades:
            raise ConfigError("ProviderRegistry needs at least one provider")
        if default_provider not in facades:
            raise ConfigError(f"Default provider '{default_provider}' is not registered")
        self._facades = dict(facades)
        self._clients = dict(clients or {})
        self._default = default_provider

    @property
    def default_provider(self) -> str:
        return self._default

    @default_provider.setter
    def default_provider(self, name: str) -> None:
        if name not in self._facades:
            LOGGER.warning("Cannot make unknown provider '%s' the default; keeping %s", name, self._default)
            return
        self._default = name
        LOGGER.info("Default provider set to %s", name)

    def available_providers(self) -> list[str]:
        return list(self._facades)

    def get(self, name: str | None = None) -> ProviderFacade:
        """Return the facade for ``name``, falling back to the default provider."""
        if name is None:
            return self._facades[self._default]
        facade = self._facades.get(name.lower())
        if facade is None:
            LOGGER.warning("Unknown provider '%s'; using default %s", name, self._default)
            return self._facades[self._default]
        return facade

    def require(self, name: str) -> ProviderFacade:
        """Return the facade for ``name`` or raise ``UnknownProviderError``."""
        facade = self._facades.get(name.lower())
        if facade is None:
            raise UnknownProviderError(name)
        return facade

    def client(self, name: str | None = None) -> BaseInferenceClient:
        """Return the inference client paired with the resolved facade."""
        facade = self.get(name)
        client = self._clients.get(facade.name)
        if client is None:
            raise UnknownProviderError(facade.name)
        return client

    def invalidate_group(self, group_id: str) -> int:
        """Drop ``group_id`` from every distinct cache; return entries removed."""
        seen: set[int] = set()
        removed = 0
        for facade in self._facades.values():
            if id(facade.cache) in seen:
                continue
            seen.add(id(facade.cache))
            removed += facade.invalidate_group(group_id)
        return removed

    def all_stats(self) -> dict[str, Any]:
        return {
            "default_provider": self._default,
            "providers": {name: facade.get_stats() for name, facade in self._facades.items()},
        }

    async def close(self) -> None:
        for facade in self._facades.values():
            await facade.close()
        for client in self._clients.values():
            await client.close()


def default_client_factory(dry_run: bool = False) -> ClientFactory:
    def factory(settings: ProviderSettings) -> BaseInferenceClient:
        return OpenAICompatibleClient(
            settings.name,
            settings.model or settings.name,
            base_url=settings.base_url,
            dry_run=dry_run,
        )

    return factory


def build_registry(
    settings: OrchestratorSettings,
    client_factory: ClientFactory | None = None,
    *,
    dry_run: bool = False,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> ProviderRegistry:
    """Build one facade per provider with credentials, all sharing one cache."""
    factory = client_factory or default_client_factory(dry_run=dry_run)
    cache = ResultCache(settings.cache, clock=clock)

    facades: dict[str, ProviderFacade] = {}
    clients: dict[str, BaseInferenceClient] = {}
    for name, provider in settings.providers.items():
        if not provider.keys:
            LOGGER.warning("Skipping provider %s: no keys found in %s", name, provider.keys_env)
            continue
        facades[name] = ProviderFacade.create(
            name,
            provider.keys,
            rate_limit=provider.rate_limit_config(),
            retry_policy=provider.retry_policy(),
            disable_seconds=provider.disable_seconds,
            cache=cache,
            clock=clock,
            sleep=sleep,
            rng=rng,
        )
        clients[name] = factory(provider)

    if not facades:
        raise ConfigError("No provider has credentials configured")

    default = settings.default_provider
    if default not in facades:
        fallback = next(iter(facades))
        LOGGER.warning("Default provider %s has no keys; using %s", default, fallback)
        default = fallback

    LOGGER.info("Provider registry ready: %s (default=%s)", ", ".join(facades), default)
    return ProviderRegistry(facades, default_provider=default, clients=clients)
