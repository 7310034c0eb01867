"""Exceptions raised by model providers."""


class ProviderError(Exception):
    """Base class for failures talking to an inference endpoint."""


class GatewayError(ProviderError):
    """Non-success HTTP response from the inference gateway."""

    def __init__(self, status_code: int, body: str, model: str | None = None):
        self.status_code = status_code
        self.body = body
        self.model = model
        target = f" for {model}" if model else ""
        super().__init__(f"Gateway returned HTTP {status_code}{target}: {body[:500]}")


class ProtocolError(ProviderError):
    """The response could not be read as an event stream."""


class GatewayTimeoutError(ProviderError):
    """The request did not start streaming before its deadline."""


class StreamEventError(ProviderError):
    """An error event arrived inside an otherwise healthy stream."""


class RelayError(ProviderError):
    """The streaming relay failed."""
