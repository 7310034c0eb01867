"""Server-sent event parsing for chat completion streams."""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from .exceptions import StreamEventError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def extract_fragment(payload: dict[str, Any]) -> str:
    """Text delta carried by one event payload.

    Gateway events carry ``choices[0].delta.content``; relay events carry a
    flat ``content`` field.
    """
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    content = payload.get("content")
    return content if isinstance(content, str) else ""


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or "Unknown streaming error")
    return str(error) or "Unknown streaming error"


async def iter_sse_fragments(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield non-empty text fragments from SSE ``data:`` lines until ``[DONE]``.

    Comment lines and malformed JSON bodies are skipped. An ``error`` event
    raises :class:`StreamEventError`.
    """
    async for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith(":") or not line.startswith("data:"):
            continue

        data = line[len("data:"):].strip()
        if data == DONE_SENTINEL:
            return

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping invalid JSON in stream: {data[:100]}")
            continue

        if not isinstance(parsed, dict):
            continue

        if "error" in parsed:
            message = _error_message(parsed["error"])
            logger.error(f"Streaming error event: {message}")
            raise StreamEventError(message)

        fragment = extract_fragment(parsed)
        if fragment:
            yield fragment
