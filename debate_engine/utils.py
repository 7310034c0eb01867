"""Utility functions for the debate engine."""

import json
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    """Serialize a datetime to the fixed-width UTC ISO form stored in the database.

    Fixed width keeps lexicographic comparison in SQL equivalent to
    chronological comparison.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_json_list(value: str | None) -> list[str]:
    if not value:
        return []
    return list(json.loads(value))
