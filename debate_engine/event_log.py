"""Persistence of operational log events."""

import logging
from typing import TYPE_CHECKING

from .flags import FlagProvider

if TYPE_CHECKING:
    from .database import DatabaseManager


class DatabaseLogHandler(logging.Handler):
    """Writes records that carry an ``event_type`` to the logs table.

    Records are only persisted while the ``enable_logging`` operator flag is
    set; the flag is read for every record.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        flag_provider: FlagProvider,
        level: int = logging.INFO,
    ):
        super().__init__(level)
        self.db = db
        self.flag_provider = flag_provider

    def emit(self, record: logging.LogRecord) -> None:
        event_type = getattr(record, "event_type", None)
        if not event_type:
            return

        try:
            if not self.flag_provider.read().enable_logging:
                return

            detail = None
            if record.exc_info:
                detail = self.format_exception(record)

            self.db.insert_log(
                level=record.levelname,
                event_type=event_type,
                message=record.getMessage(),
                debate_id=getattr(record, "debate_id", None),
                turn_id=getattr(record, "turn_id", None),
                model=getattr(record, "model", None),
                detail=detail,
            )
        except Exception:
            self.handleError(record)

    def format_exception(self, record: logging.LogRecord) -> str:
        formatter = self.formatter or logging.Formatter()
        return formatter.formatException(record.exc_info)  # type: ignore[arg-type]


def install_database_log_handler(
    db: "DatabaseManager", flag_provider: FlagProvider, logger_name: str = ""
) -> DatabaseLogHandler:
    """Attach a :class:`DatabaseLogHandler` to ``logger_name`` (root by default)."""
    handler = DatabaseLogHandler(db, flag_provider)
    logging.getLogger(logger_name).addHandler(handler)
    return handler


def remove_database_log_handler(handler: DatabaseLogHandler, logger_name: str = "") -> None:
    logging.getLogger(logger_name).removeHandler(handler)
    handler.close()
