"""Debate orchestration and flow management."""

from .core import DebateEngine, mark_debate_failed, motion_passed, select_speaker
from .database import DatabaseManager
from .exceptions import (
    DebateEngineError,
    DebateNotFoundError,
    RosterValidationError,
    VotingStateError,
)
from .flags import DatabaseFlagProvider, FlagProvider
from .models import (
    Debate,
    LoopResult,
    OperatorFlags,
    RecoveryReport,
    Turn,
    TurnResult,
    Vote,
    VoteTally,
    VotingResult,
)
from .recovery import StaleDebateRecovery
from .tasks import TaskRegistry
from .turn_executor import TurnExecutor
from .types import DebateStatus, LoopExit, TurnOutcome
from .voting import VotingCoordinator, parse_ballot, tally_votes

__all__ = [
    "DatabaseFlagProvider",
    "DatabaseManager",
    "Debate",
    "DebateEngine",
    "DebateEngineError",
    "DebateNotFoundError",
    "DebateStatus",
    "FlagProvider",
    "LoopExit",
    "LoopResult",
    "OperatorFlags",
    "RecoveryReport",
    "RosterValidationError",
    "StaleDebateRecovery",
    "TaskRegistry",
    "Turn",
    "TurnExecutor",
    "TurnOutcome",
    "TurnResult",
    "Vote",
    "VoteTally",
    "VotingCoordinator",
    "VotingResult",
    "mark_debate_failed",
    "motion_passed",
    "parse_ballot",
    "select_speaker",
    "tally_votes",
]
