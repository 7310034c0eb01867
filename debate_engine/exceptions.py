"""Exceptions raised by the debate engine."""


class DebateEngineError(Exception):
    """Base class for debate engine failures."""


class DebateNotFoundError(DebateEngineError):
    """Raised when a debate id has no persisted row."""

    def __init__(self, debate_id: str):
        super().__init__(f"Debate {debate_id} not found")
        self.debate_id = debate_id


class VotingStateError(DebateEngineError):
    """Raised when voting is requested for a debate that already finished."""


class RosterValidationError(DebateEngineError):
    """Raised when a debate roster does not match the configured size."""
