"""System health and operator flag endpoints."""

import logging

from fastapi import APIRouter, Depends

from web.auth_utils import require_server_token
from web.debate_manager import DebateManager, get_debate_manager
from web.debate_response import FlagsResponse
from web.debate_setup_request import FlagsUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check(debate_manager: DebateManager = Depends(get_debate_manager)):
    """Health check endpoint to verify API is running."""
    return {
        "isAlive": True,
        "activeDebates": debate_manager.db.count_active_debates(),
        "backgroundTasks": len(debate_manager.tasks.active),
    }


@router.get("/flags", response_model=FlagsResponse)
async def get_flags(debate_manager: DebateManager = Depends(get_debate_manager)):
    return FlagsResponse.from_flags(debate_manager.flags.read())


@router.put(
    "/flags",
    response_model=FlagsResponse,
    dependencies=[Depends(require_server_token)],
)
async def update_flags(
    update: FlagsUpdateRequest, debate_manager: DebateManager = Depends(get_debate_manager)
):
    """Change operator flags; omitted fields are left as they are."""
    changes = update.model_dump(exclude_none=True)
    flags = debate_manager.db.update_flags(**changes)
    logger.info(f"Operator flags changed: {changes}", extra={"event_type": "flags_updated"})
    return FlagsResponse.from_flags(flags)
