"""Streaming relay in front of the inference gateway."""

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from models.manager import ModelManager
from web.auth_utils import require_server_token
from web.debate_manager import DebateManager, get_debate_manager
from web.debate_setup_request import StreamRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def sse_event(payload: dict | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


async def relay_events(
    model_manager: ModelManager, model: str, messages: list[dict[str, str]]
) -> AsyncIterator[str]:
    """Re-emit gateway fragments as SSE; a failure becomes a final error event."""
    try:
        async for chunk in model_manager.stream_direct(model, messages):
            yield sse_event({"content": chunk})
        yield sse_event("[DONE]")
    except Exception as e:
        logger.error(f"Relay stream for {model} failed: {e}")
        yield sse_event({"error": str(e) or "Unknown error"})


@router.post("/debate/stream", dependencies=[Depends(require_server_token)])
async def stream_completion(
    request: StreamRequest, debate_manager: DebateManager = Depends(get_debate_manager)
):
    messages = [message.model_dump() for message in request.messages]
    return StreamingResponse(
        relay_events(debate_manager.model_manager, request.model, messages),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
