"""Debate start, scheduling and read endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.status import HTTP_201_CREATED, HTTP_409_CONFLICT

from debate_engine.exceptions import RosterValidationError
from web.auth_utils import require_server_token
from web.debate_manager import DebateBlockedError, DebateManager, get_debate_manager
from web.debate_response import DebateResponse, SchedulerResponse, TurnResponse, VoteResponse
from web.debate_setup_request import DebateSetupRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.post(
    "/debate/start",
    response_model=DebateResponse,
    status_code=HTTP_201_CREATED,
    dependencies=[Depends(require_server_token)],
)
async def start_debate(
    setup: DebateSetupRequest,
    debate_manager: DebateManager = Depends(get_debate_manager),
):
    """Start a debate with an explicit topic, category and roster."""
    try:
        debate = debate_manager.create_debate(setup)
    except RosterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DebateBlockedError as e:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail=e.reason)
    return DebateResponse.from_debate(debate)


@router.post(
    "/debate/scheduler",
    response_model=SchedulerResponse,
    dependencies=[Depends(require_server_token)],
)
async def schedule_debate(debate_manager: DebateManager = Depends(get_debate_manager)):
    """Start a debate drawn from the configured pools when nothing else is running."""
    try:
        debate = debate_manager.schedule_next_debate()
    except DebateBlockedError as e:
        return SchedulerResponse(started=False, message=e.reason)
    return SchedulerResponse(
        started=True,
        message=f"Started debate on '{debate.topic}'",
        debate=DebateResponse.from_debate(debate),
    )


@router.get("/debates", response_model=list[DebateResponse])
async def list_debates(
    limit: int = 20, debate_manager: DebateManager = Depends(get_debate_manager)
):
    """List the most recent debates."""
    debates = debate_manager.db.list_recent_debates(limit=max(1, min(limit, 100)))
    return [DebateResponse.from_debate(debate) for debate in debates]


@router.get("/debates/{debate_id}", response_model=DebateResponse)
async def get_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    debate = debate_manager.db.get_debate(debate_id)
    if debate is None:
        raise HTTPException(status_code=404, detail=f"Debate {debate_id} not found")
    return DebateResponse.from_debate(debate)


@router.get("/debates/{debate_id}/turns", response_model=list[TurnResponse])
async def get_debate_turns(
    debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)
):
    """All turns of a debate, system notices included, in the order they were written."""
    if debate_manager.db.get_debate(debate_id) is None:
        raise HTTPException(status_code=404, detail=f"Debate {debate_id} not found")
    turns = debate_manager.db.list_turns(debate_id, chronological=True)
    return [TurnResponse.from_turn(turn) for turn in turns]


@router.get("/debates/{debate_id}/votes", response_model=list[VoteResponse])
async def get_debate_votes(
    debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)
):
    if debate_manager.db.get_debate(debate_id) is None:
        raise HTTPException(status_code=404, detail=f"Debate {debate_id} not found")
    return [VoteResponse.from_vote(vote) for vote in debate_manager.db.list_votes(debate_id)]
