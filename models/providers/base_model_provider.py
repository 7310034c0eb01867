from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config.settings import SystemConfig


class BaseModelProvider(ABC):
    """Abstract base class for streaming model providers."""

    def __init__(self, system_config: "SystemConfig"):
        self.system_config = system_config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        pass

    @abstractmethod
    def stream_chat(
        self, model: str, messages: list[dict[str, str]]
    ) -> AsyncIterator[str]:
        """Stream the text fragments of one chat completion.

        Implementations are async generators. The sequence is finite and
        ends when the upstream signals end of stream.
        """
        pass
