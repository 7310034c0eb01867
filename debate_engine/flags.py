"""Operator flag access for the debate engine."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .models import OperatorFlags

if TYPE_CHECKING:
    from .database import DatabaseManager


class FlagProvider(ABC):
    """Source of operator flag snapshots.

    Callers read a fresh snapshot at every decision point and never hold one
    across an await.
    """

    @abstractmethod
    def read(self) -> OperatorFlags:
        """Return the current flags. Raises when they cannot be fetched."""
        pass


class DatabaseFlagProvider(FlagProvider):
    """Reads the single-row flags table."""

    def __init__(self, db: "DatabaseManager"):
        self.db = db

    def read(self) -> OperatorFlags:
        return self.db.read_flags()
