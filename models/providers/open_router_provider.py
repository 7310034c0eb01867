import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import httpx

from .base_model_provider import BaseModelProvider
from .exceptions import GatewayError, GatewayTimeoutError, ProtocolError
from .sse import iter_sse_fragments

if TYPE_CHECKING:
    from config.settings import SystemConfig

logger = logging.getLogger(__name__)

RATE_LIMITED = 429


class OpenRouterProvider(BaseModelProvider):
    """OpenRouter chat completions over server-sent events."""

    def __init__(
        self,
        system_config: "SystemConfig",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(system_config)
        self.settings = system_config.openrouter
        self._transport = transport

        if not self.settings.resolve_api_key():
            logger.warning(
                "No OpenRouter API key found. Set OPENROUTER_API_KEY or configure in system settings."
            )

    @property
    def provider_name(self) -> str:
        return "openrouter"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.settings.resolve_api_key() or ''}",
            "Content-Type": "application/json",
        }
        if self.settings.site_url:
            headers["HTTP-Referer"] = self.settings.site_url
        if self.settings.app_name:
            headers["X-Title"] = self.settings.app_name
        return headers

    def paid_model_id(self, model: str) -> str | None:
        """Paid identifier for a free-tier model id, or None if it is not free-tier."""
        suffix = self.settings.free_suffix
        if suffix and model.endswith(suffix):
            return model[: -len(suffix)]
        return None

    async def _open_stream(self, client: httpx.AsyncClient, model: str, messages: list[dict[str, str]]) -> httpx.Response:
        """Send the request and wait for response headers within the outer deadline."""
        request = client.build_request(
            "POST",
            f"{self.settings.base_url}/chat/completions",
            json={"model": model, "messages": messages, "stream": True},
            headers=self._headers(),
        )
        try:
            return await asyncio.wait_for(
                client.send(request, stream=True), timeout=self.settings.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise GatewayTimeoutError(
                f"OpenRouter did not respond for {model} within {self.settings.timeout}s"
            ) from e
        except httpx.TransportError as e:
            raise ProtocolError(f"OpenRouter request failed for {model}: {e}") from e

    async def stream_chat(
        self, model: str, messages: list[dict[str, str]]
    ) -> AsyncIterator[str]:
        """Stream fragments, failing over once from a rate-limited free model to its paid id."""
        attempt_model = model

        for attempt in range(2):
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.settings.timeout
            ) as client:
                response = await self._open_stream(client, attempt_model, messages)
                try:
                    paid_model = self.paid_model_id(attempt_model)
                    if response.status_code == RATE_LIMITED and attempt == 0 and paid_model:
                        logger.warning(
                            f"Rate limited on free model {attempt_model}, retrying with {paid_model}",
                            extra={"event_type": "free_model_fallback", "model": attempt_model},
                        )
                        attempt_model = paid_model
                        continue

                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise GatewayError(response.status_code, body, attempt_model)

                    try:
                        async for fragment in iter_sse_fragments(response.aiter_lines()):
                            yield fragment
                    except httpx.TimeoutException as e:
                        raise GatewayTimeoutError(
                            f"OpenRouter stream for {attempt_model} stalled: {e}"
                        ) from e
                    except (httpx.StreamError, httpx.TransportError) as e:
                        raise ProtocolError(
                            f"OpenRouter stream for {attempt_model} broke: {e}"
                        ) from e

                    logger.debug(f"OpenRouter stream completed for {attempt_model}")
                    return
                finally:
                    await response.aclose()
