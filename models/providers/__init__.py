"""Model providers package."""

from .base_model_provider import BaseModelProvider
from .exceptions import (
    GatewayError,
    GatewayTimeoutError,
    ProtocolError,
    ProviderError,
    RelayError,
    StreamEventError,
)
from .open_router_provider import OpenRouterProvider
from .providers import ProviderFactory
from .relay_provider import RelayProvider
from .sse import iter_sse_fragments

__all__ = [
    "BaseModelProvider",
    "GatewayError",
    "GatewayTimeoutError",
    "OpenRouterProvider",
    "ProtocolError",
    "ProviderError",
    "ProviderFactory",
    "RelayError",
    "RelayProvider",
    "StreamEventError",
    "iter_sse_fragments",
]
