import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import httpx

from .base_model_provider import BaseModelProvider
from .exceptions import RelayError, StreamEventError
from .sse import iter_sse_fragments

if TYPE_CHECKING:
    from config.settings import SystemConfig

logger = logging.getLogger(__name__)


class RelayProvider(BaseModelProvider):
    """Streams completions through the application's own relay endpoint.

    The relay re-emits gateway fragments as ``data: {"content": ...}`` events
    and reports failures as a final ``data: {"error": ...}`` event.
    """

    def __init__(
        self,
        system_config: "SystemConfig",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(system_config)
        self.settings = system_config.relay
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "relay"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.system_config.resolve_server_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def stream_chat(
        self, model: str, messages: list[dict[str, str]]
    ) -> AsyncIterator[str]:
        if not self.settings.url:
            raise RelayError("Relay URL is not configured")

        async with httpx.AsyncClient(
            transport=self._transport, timeout=self.settings.timeout
        ) as client:
            request = client.build_request(
                "POST",
                self.settings.url,
                json={"model": model, "messages": messages},
                headers=self._headers(),
            )
            try:
                response = await asyncio.wait_for(
                    client.send(request, stream=True), timeout=self.settings.timeout
                )
            except (asyncio.TimeoutError, httpx.HTTPError) as e:
                raise RelayError(f"Relay request failed for {model}: {e}") from e

            try:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise RelayError(f"Relay returned HTTP {response.status_code}: {body[:500]}")

                try:
                    async for fragment in iter_sse_fragments(response.aiter_lines()):
                        yield fragment
                except StreamEventError as e:
                    raise RelayError(f"Relay reported an error for {model}: {e}") from e
                except httpx.HTTPError as e:
                    raise RelayError(f"Relay stream for {model} broke: {e}") from e
            finally:
                await response.aclose()
