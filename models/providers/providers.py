from typing import TYPE_CHECKING

import httpx

from .base_model_provider import BaseModelProvider
from .open_router_provider import OpenRouterProvider
from .relay_provider import RelayProvider

if TYPE_CHECKING:
    from config.settings import SystemConfig


class ProviderFactory:
    """Factory for creating model providers."""

    _providers: dict[str, type[BaseModelProvider]] = {
        "openrouter": OpenRouterProvider,
        "relay": RelayProvider,
    }

    @classmethod
    def create_provider(
        cls,
        provider_name: str,
        system_config: "SystemConfig",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BaseModelProvider:
        """Create a provider instance by name."""
        if provider_name not in cls._providers:
            raise ValueError(
                f"Unknown provider: {provider_name}. Available: {list(cls._providers.keys())}"
            )

        provider_class = cls._providers[provider_name]
        return provider_class(system_config, transport=transport)
