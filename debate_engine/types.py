"""Shared types, enums and sentinels for the debate engine."""

from enum import Enum

SYSTEM_SPEAKER = "system"

# Turn index reserved for the announcement that opens a debate
ANNOUNCEMENT_TURN_INDEX = 0
# Turn index used by every other system notice
SYSTEM_NOTICE_TURN_INDEX = -1

# Participants end a reply with this phrase to ask for voting. The prompt
# builder and the motion detector both read it from here.
MOTION_PHRASE = "I motion to end debate"

INVALID_VOTE = "invalid_vote"
ERROR_BALLOT = "error"
NO_VALID_VOTES = "no_valid_votes"
TIE = "tie"

EMPTY_RESPONSE_MARKER = "[Model returned empty response]"
TIMEOUT_MARKER = "[Model timed out before responding]"
INTERRUPTED_MARKER = "[Turn interrupted by a server restart]"


class DebateStatus(Enum):
    """Lifecycle status of a debate."""

    RUNNING = "running"
    VOTING = "voting"
    ENDED = "ended"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (DebateStatus.ENDED, DebateStatus.ERROR, DebateStatus.ABORTED)


ACTIVE_STATUSES = (DebateStatus.RUNNING, DebateStatus.VOTING)


class TurnOutcome(Enum):
    """Classified result of one model turn."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


class LoopExit(Enum):
    """Why the debate loop stopped."""

    VOTING = "voting"
    ABORTED = "aborted"
    FLAG_ERROR = "flag_error"
    TURNS_FETCH_ERROR = "turns_fetch_error"
    TURN_HANDLER_CRITICAL = "turn_handler_critical"
    MAX_SKIPS = "max_skips"
    SAFETY_EXIT = "safety_exit"
