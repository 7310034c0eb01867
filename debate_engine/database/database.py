"""SQLite database manager for debates, turns, votes and operator flags."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from ..models import Debate, OperatorFlags, Turn, Vote
from ..types import (
    ACTIVE_STATUSES,
    SYSTEM_NOTICE_TURN_INDEX,
    SYSTEM_SPEAKER,
    DebateStatus,
    TurnOutcome,
)
from ..utils import load_json_list, parse_timestamp, to_timestamp, utc_now
from .schema import SchemaManager

logger = logging.getLogger(__name__)

DEBATE_COLUMNS = frozenset(
    {
        "status",
        "current_turn_index",
        "current_model",
        "last_activity_at",
        "ended_at",
        "winner",
        "winning_votes",
        "total_votes",
        "is_tie",
        "tied_models",
        "detail",
    }
)

TURN_COLUMNS = frozenset(
    {"content", "token_count", "ttft_ms", "finished_at", "outcome"}
)

FLAG_COLUMNS = (
    "kill_switch",
    "pause",
    "abort",
    "enable_new_debates",
    "enable_voting",
    "enable_logging",
    "motion_to_end_debate",
)


def _to_db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_timestamp(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return value


def _status_placeholders(statuses: Iterable[DebateStatus]) -> tuple[str, list[str]]:
    values = [status.value for status in statuses]
    return ", ".join("?" for _ in values), values


class DatabaseManager:
    """Manages SQLite connections and all persisted debate state.

    Every operation opens its own connection so the manager can be shared by
    the debate loop, the voting coordinator and request handlers.
    """

    def __init__(self, db_path: str | Path = "debates.db"):
        self.db_path = Path(db_path)
        self.schema_manager = SchemaManager()
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the database with required tables using schema manager."""
        with self._get_connection() as conn:
            self.schema_manager.apply(conn.cursor())
            conn.commit()
            logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    # Row conversion

    @staticmethod
    def _row_to_debate(row: sqlite3.Row) -> Debate:
        return Debate(
            id=row["id"],
            topic=row["topic"],
            category=row["category"],
            participants=load_json_list(row["participants"]),
            status=DebateStatus(row["status"]),
            max_turns=row["max_turns"],
            current_turn_index=row["current_turn_index"],
            current_model=row["current_model"],
            started_at=parse_timestamp(row["started_at"]),
            last_activity_at=parse_timestamp(row["last_activity_at"]),
            ended_at=parse_timestamp(row["ended_at"]),
            winner=row["winner"],
            winning_votes=row["winning_votes"],
            total_votes=row["total_votes"],
            is_tie=bool(row["is_tie"]),
            tied_models=load_json_list(row["tied_models"]),
            detail=row["detail"],
        )

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            id=row["id"],
            debate_id=row["debate_id"],
            speaker=row["speaker"],
            turn_index=row["turn_index"],
            content=row["content"],
            token_count=row["token_count"],
            ttft_ms=row["ttft_ms"],
            started_at=parse_timestamp(row["started_at"]),
            finished_at=parse_timestamp(row["finished_at"]),
            outcome=TurnOutcome(row["outcome"]) if row["outcome"] else None,
        )

    @staticmethod
    def _row_to_vote(row: sqlite3.Row) -> Vote:
        return Vote(
            id=row["id"],
            debate_id=row["debate_id"],
            voter=row["voter"],
            vote_for=row["vote_for"],
            created_at=parse_timestamp(row["created_at"]),
        )

    # Debates

    def create_debate(
        self,
        debate_id: str,
        topic: str,
        category: str,
        participants: list[str],
        max_turns: int,
        started_at: datetime | None = None,
    ) -> Debate:
        """Insert a new running debate and return the stored row."""
        started_at = started_at or utc_now()
        stamp = to_timestamp(started_at)

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO debates (
                    id, topic, category, participants, status, max_turns,
                    current_turn_index, current_model, started_at, last_activity_at
                ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    debate_id,
                    topic,
                    category,
                    json.dumps(participants),
                    DebateStatus.RUNNING.value,
                    max_turns,
                    participants[0] if participants else None,
                    stamp,
                    stamp,
                ),
            )
            conn.commit()

        logger.info(f"Created debate {debate_id} on '{topic}' with {len(participants)} participants")
        debate = self.get_debate(debate_id)
        assert debate is not None
        return debate

    def get_debate(self, debate_id: str) -> Debate | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM debates WHERE id = ?", (debate_id,)
            ).fetchone()
        return self._row_to_debate(row) if row else None

    def update_debate(
        self,
        debate_id: str,
        fields: dict[str, Any],
        expected_statuses: Iterable[DebateStatus] | None = None,
    ) -> bool:
        """Atomically update a debate row.

        When ``expected_statuses`` is given the update only applies while the
        row is in one of those statuses. Returns whether a row changed.
        """
        unknown = set(fields) - DEBATE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown debate columns: {sorted(unknown)}")
        if not fields:
            return False

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params: list[Any] = [_to_db_value(value) for value in fields.values()]
        query = f"UPDATE debates SET {assignments} WHERE id = ?"
        params.append(debate_id)

        if expected_statuses is not None:
            placeholders, values = _status_placeholders(expected_statuses)
            query += f" AND status IN ({placeholders})"
            params.extend(values)

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount > 0

    def list_debates_by_status(self, statuses: Iterable[DebateStatus]) -> list[Debate]:
        placeholders, values = _status_placeholders(statuses)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM debates WHERE status IN ({placeholders}) ORDER BY started_at",
                values,
            ).fetchall()
        return [self._row_to_debate(row) for row in rows]

    def list_recent_debates(self, limit: int = 20) -> list[Debate]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM debates ORDER BY started_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_debate(row) for row in rows]

    def count_active_debates(self) -> int:
        placeholders, values = _status_placeholders(ACTIVE_STATUSES)
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM debates WHERE status IN ({placeholders})",
                values,
            ).fetchone()
        return int(row["total"])

    def find_stale_debates(self, threshold: datetime) -> list[Debate]:
        """Active debates whose heartbeat is older than ``threshold``."""
        placeholders, values = _status_placeholders(ACTIVE_STATUSES)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM debates
                WHERE status IN ({placeholders}) AND last_activity_at < ?
                ORDER BY last_activity_at
                """,
                [*values, to_timestamp(threshold)],
            ).fetchall()
        return [self._row_to_debate(row) for row in rows]

    def claim_stale_debate(
        self, debate_id: str, observed_activity_at: datetime, now: datetime | None = None
    ) -> bool:
        """Refresh the heartbeat only if nobody else has touched it since it was read.

        Two processes recovering at the same time both read the same stale
        heartbeat; only the first compare-and-swap succeeds.
        """
        now = now or utc_now()
        placeholders, values = _status_placeholders(ACTIVE_STATUSES)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE debates SET last_activity_at = ?
                WHERE id = ? AND last_activity_at = ? AND status IN ({placeholders})
                """,
                [to_timestamp(now), debate_id, to_timestamp(observed_activity_at), *values],
            )
            conn.commit()
            return cursor.rowcount > 0

    # Turns

    def insert_turn(
        self,
        debate_id: str,
        speaker: str,
        turn_index: int,
        content: str = "",
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
        outcome: TurnOutcome | None = None,
    ) -> Turn:
        """Insert a turn row and return it."""
        started_at = started_at or utc_now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO turns (
                    debate_id, speaker, turn_index, content, started_at, finished_at, outcome
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    debate_id,
                    speaker,
                    turn_index,
                    content,
                    to_timestamp(started_at),
                    to_timestamp(finished_at) if finished_at else None,
                    outcome.value if outcome else None,
                ),
            )
            conn.commit()
            turn_id = cursor.lastrowid

        return Turn(
            id=turn_id,
            debate_id=debate_id,
            speaker=speaker,
            turn_index=turn_index,
            content=content,
            started_at=started_at,
            finished_at=finished_at,
            outcome=outcome,
        )

    def insert_system_turn(
        self, debate_id: str, message: str, turn_index: int = SYSTEM_NOTICE_TURN_INDEX
    ) -> Turn:
        """Insert an already finished system-authored turn."""
        now = utc_now()
        return self.insert_turn(
            debate_id,
            SYSTEM_SPEAKER,
            turn_index,
            content=message,
            started_at=now,
            finished_at=now,
            outcome=TurnOutcome.SUCCESS,
        )

    def update_turn(self, turn_id: int, **fields: Any) -> None:
        unknown = set(fields) - TURN_COLUMNS
        if unknown:
            raise ValueError(f"Unknown turn columns: {sorted(unknown)}")
        if not fields:
            return

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [_to_db_value(value) for value in fields.values()]
        with self._get_connection() as conn:
            conn.execute(f"UPDATE turns SET {assignments} WHERE id = ?", [*params, turn_id])
            conn.commit()

    def get_turn(self, turn_id: int) -> Turn | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM turns WHERE id = ?", (turn_id,)).fetchone()
        return self._row_to_turn(row) if row else None

    def list_turns(
        self, debate_id: str, include_system: bool = True, chronological: bool = False
    ) -> list[Turn]:
        """Turns of a debate ordered by turn index, or by insertion when ``chronological``."""
        query = "SELECT * FROM turns WHERE debate_id = ?"
        params: list[Any] = [debate_id]
        if not include_system:
            query += " AND speaker != ?"
            params.append(SYSTEM_SPEAKER)
        query += " ORDER BY id" if chronological else " ORDER BY turn_index, id"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_turn(row) for row in rows]

    def finalize_open_turns(self, debate_id: str, marker: str) -> int:
        """Close every unfinished turn of a debate with ``marker`` appended.

        Returns the number of turns closed.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE turns
                SET content = CASE WHEN content = '' THEN ? ELSE content || ' ' || ? END,
                    finished_at = ?,
                    outcome = ?
                WHERE debate_id = ? AND finished_at IS NULL
                """,
                (
                    marker,
                    marker,
                    to_timestamp(utc_now()),
                    TurnOutcome.ERROR.value,
                    debate_id,
                ),
            )
            conn.commit()
            return cursor.rowcount

    # Votes

    def insert_vote(self, debate_id: str, voter: str, vote_for: str) -> Vote:
        created_at = utc_now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO votes (debate_id, voter, vote_for, created_at) VALUES (?, ?, ?, ?)",
                (debate_id, voter, vote_for, to_timestamp(created_at)),
            )
            conn.commit()
            vote_id = cursor.lastrowid

        return Vote(
            id=vote_id,
            debate_id=debate_id,
            voter=voter,
            vote_for=vote_for,
            created_at=created_at,
        )

    def list_votes(self, debate_id: str) -> list[Vote]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM votes WHERE debate_id = ? ORDER BY id", (debate_id,)
            ).fetchall()
        return [self._row_to_vote(row) for row in rows]

    # Operator flags

    def read_flags(self) -> OperatorFlags:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM flags WHERE id = 1").fetchone()
        if row is None:
            return OperatorFlags()
        return OperatorFlags(**{column: bool(row[column]) for column in FLAG_COLUMNS})

    def update_flags(self, **changes: bool) -> OperatorFlags:
        """Set operator flags and return the resulting snapshot."""
        unknown = set(changes) - set(FLAG_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown flags: {sorted(unknown)}")

        if changes:
            assignments = ", ".join(f"{column} = ?" for column in changes)
            params = [int(bool(value)) for value in changes.values()]
            with self._get_connection() as conn:
                conn.execute(
                    f"UPDATE flags SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = 1",
                    params,
                )
                conn.commit()
            logger.info(f"Operator flags updated: {changes}")

        return self.read_flags()

    # Logs

    def insert_log(
        self,
        level: str,
        event_type: str,
        message: str,
        debate_id: str | None = None,
        turn_id: int | None = None,
        model: str | None = None,
        detail: str | None = None,
    ) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO logs (level, event_type, debate_id, turn_id, model, message, detail)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (level, event_type, debate_id, turn_id, model, message, detail),
            )
            conn.commit()

    def list_logs(self, debate_id: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM logs"
        params: list[Any] = []
        if debate_id is not None:
            query += " WHERE debate_id = ?"
            params.append(debate_id)
        query += " ORDER BY id"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]
