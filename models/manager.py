"""Model manager routing streams through the relay or directly to the gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TypeAlias

import httpx

from config.settings import SystemConfig

from .providers.base_model_provider import BaseModelProvider
from .providers.exceptions import ProviderError
from .providers.providers import ProviderFactory

MessageDict: TypeAlias = dict[str, str]
MessageList: TypeAlias = list[MessageDict]

logger = logging.getLogger(__name__)


class ModelManager:
    """Streams model output, preferring the relay when one is configured.

    A relay failure before the first fragment triggers exactly one direct
    attempt against the gateway. Failures after output has started propagate
    so the caller keeps the partial content it already has.
    """

    def __init__(
        self,
        system_config: SystemConfig,
        gateway: BaseModelProvider | None = None,
        relay: BaseModelProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._system_config = system_config
        self.gateway = gateway or ProviderFactory.create_provider(
            "openrouter", system_config, transport=transport
        )
        if relay is None and system_config.relay.url:
            relay = ProviderFactory.create_provider("relay", system_config, transport=transport)
        self.relay = relay

    async def stream_direct(self, model_id: str, messages: MessageList) -> AsyncIterator[str]:
        """Stream straight from the gateway, bypassing the relay."""
        async for fragment in self.gateway.stream_chat(model_id, messages):
            yield fragment

    async def stream_response(self, model_id: str, messages: MessageList) -> AsyncIterator[str]:
        """Stream the fragments of one completion for ``model_id``."""
        if self.relay is None:
            async for fragment in self.stream_direct(model_id, messages):
                yield fragment
            return

        produced = False
        try:
            async for fragment in self.relay.stream_chat(model_id, messages):
                produced = True
                yield fragment
            return
        except ProviderError as exc:
            if produced:
                raise
            logger.warning(
                "Relay failed for %s before any output, falling back to direct gateway: %s",
                model_id,
                exc,
                extra={"event_type": "relay_fallback", "model": model_id},
            )

        async for fragment in self.stream_direct(model_id, messages):
            yield fragment
