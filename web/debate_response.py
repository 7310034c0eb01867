from datetime import datetime

from pydantic import BaseModel

from debate_engine.models import Debate, OperatorFlags, Turn, Vote


class DebateResponse(BaseModel):
    """Response model for debate information."""

    id: str
    topic: str
    category: str
    participants: list[str]
    status: str
    max_turns: int
    current_turn_index: int
    current_model: str | None = None
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    ended_at: datetime | None = None
    winner: str | None = None
    winning_votes: int | None = None
    total_votes: int | None = None
    is_tie: bool = False
    tied_models: list[str] = []
    detail: str | None = None

    @classmethod
    def from_debate(cls, debate: Debate) -> "DebateResponse":
        return cls(
            id=debate.id,
            topic=debate.topic,
            category=debate.category,
            participants=debate.participants,
            status=debate.status.value,
            max_turns=debate.max_turns,
            current_turn_index=debate.current_turn_index,
            current_model=debate.current_model,
            started_at=debate.started_at,
            last_activity_at=debate.last_activity_at,
            ended_at=debate.ended_at,
            winner=debate.winner,
            winning_votes=debate.winning_votes,
            total_votes=debate.total_votes,
            is_tie=debate.is_tie,
            tied_models=debate.tied_models,
            detail=debate.detail,
        )


class TurnResponse(BaseModel):
    id: int
    speaker: str
    turn_index: int
    content: str
    token_count: int
    ttft_ms: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    outcome: str | None = None

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnResponse":
        return cls(
            id=turn.id,
            speaker=turn.speaker,
            turn_index=turn.turn_index,
            content=turn.content,
            token_count=turn.token_count,
            ttft_ms=turn.ttft_ms,
            started_at=turn.started_at,
            finished_at=turn.finished_at,
            outcome=turn.outcome.value if turn.outcome else None,
        )


class VoteResponse(BaseModel):
    voter: str
    vote_for: str
    created_at: datetime | None = None

    @classmethod
    def from_vote(cls, vote: Vote) -> "VoteResponse":
        return cls(voter=vote.voter, vote_for=vote.vote_for, created_at=vote.created_at)


class FlagsResponse(BaseModel):
    kill_switch: bool
    pause: bool
    abort: bool
    enable_new_debates: bool
    enable_voting: bool
    enable_logging: bool
    motion_to_end_debate: bool

    @classmethod
    def from_flags(cls, flags: OperatorFlags) -> "FlagsResponse":
        return cls(
            kill_switch=flags.kill_switch,
            pause=flags.pause,
            abort=flags.abort,
            enable_new_debates=flags.enable_new_debates,
            enable_voting=flags.enable_voting,
            enable_logging=flags.enable_logging,
            motion_to_end_debate=flags.motion_to_end_debate,
        )


class SchedulerResponse(BaseModel):
    """Outcome of a scheduler tick."""

    started: bool
    message: str
    debate: DebateResponse | None = None
