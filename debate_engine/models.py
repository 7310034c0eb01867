"""Data models for the debate engine."""

from dataclasses import dataclass, field
from datetime import datetime

from .types import SYSTEM_SPEAKER, DebateStatus, LoopExit, TurnOutcome


@dataclass
class Debate:
    """One persisted debate."""

    id: str
    topic: str
    category: str
    participants: list[str]
    status: DebateStatus
    max_turns: int
    current_turn_index: int = 0
    current_model: str | None = None
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    ended_at: datetime | None = None
    winner: str | None = None
    winning_votes: int | None = None
    total_votes: int | None = None
    is_tie: bool = False
    tied_models: list[str] = field(default_factory=list)
    detail: str | None = None


@dataclass
class Turn:
    """One utterance by a participant, or a system notice."""

    id: int
    debate_id: str
    speaker: str
    turn_index: int
    content: str = ""
    token_count: int = 0
    ttft_ms: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    outcome: TurnOutcome | None = None

    @property
    def is_system(self) -> bool:
        return self.speaker == SYSTEM_SPEAKER


@dataclass
class Vote:
    """One participant's ballot."""

    id: int
    debate_id: str
    voter: str
    vote_for: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class OperatorFlags:
    """Snapshot of the externally controlled operator flags."""

    kill_switch: bool = False
    pause: bool = False
    abort: bool = False
    enable_new_debates: bool = True
    enable_voting: bool = True
    enable_logging: bool = True
    motion_to_end_debate: bool = False

    @property
    def stops_debate(self) -> bool:
        return self.kill_switch or self.abort


@dataclass
class TurnResult:
    """Classified outcome of a single turn execution."""

    outcome: TurnOutcome
    turn_id: int | None
    content: str = ""
    message: str = ""
    ttft_ms: int | None = None


@dataclass
class LoopResult:
    """How a debate loop run ended."""

    exit: LoopExit
    detail: str = ""


@dataclass
class VoteTally:
    """Aggregated ballots for one voting round."""

    counts: dict[str, int]
    winner: str
    winners: list[str]
    winning_votes: int
    total_votes: int
    is_tie: bool


@dataclass
class VotingResult:
    """Ballots and tally of a finished voting round."""

    debate_id: str
    ballots: dict[str, str]
    tally: VoteTally


@dataclass
class RecoveryReport:
    """Summary of a stale-debate recovery pass."""

    resumed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
