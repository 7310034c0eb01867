"""Applies the debate arena's SQL table definitions."""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

TABLES_DIR = Path(__file__).parent / "tables"

# Turns and votes reference debates; indexes need every table in place
SCHEMA_FILES = (
    "debates.sql",
    "turns.sql",
    "votes.sql",
    "flags.sql",
    "logs.sql",
    "indexes.sql",
)


class SchemaManager:
    """Creates the debate, turn, vote, flag and log tables.

    Every statement is idempotent (``IF NOT EXISTS`` / ``INSERT OR IGNORE``), so
    applying the schema to an existing database is a no-op.
    """

    def __init__(self, tables_dir: Path = TABLES_DIR):
        self.tables_dir = tables_dir

    def missing_files(self) -> list[str]:
        return [name for name in SCHEMA_FILES if not (self.tables_dir / name).exists()]

    def statements(self, name: str) -> list[str]:
        sql = (self.tables_dir / name).read_text(encoding="utf-8")
        return [part.strip() for part in sql.split(";") if part.strip()]

    def apply(self, cursor: sqlite3.Cursor) -> None:
        """Run every schema file in order. Raises FileNotFoundError if any is missing."""
        missing = self.missing_files()
        if missing:
            raise FileNotFoundError(f"Missing schema files in {self.tables_dir}: {missing}")

        for name in SCHEMA_FILES:
            for statement in self.statements(name):
                cursor.execute(statement)
            logger.debug(f"Applied {name}")
