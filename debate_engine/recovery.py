"""Resumption of debates left active by a previous process."""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from config.settings import DebateConfig

from .core import DebateEngine, mark_debate_failed
from .models import Debate, RecoveryReport
from .tasks import TaskRegistry
from .types import INTERRUPTED_MARKER, DebateStatus
from .utils import utc_now

if TYPE_CHECKING:
    from .database import DatabaseManager
    from .voting import VotingCoordinator

logger = logging.getLogger(__name__)

RESUME_FAILED_DETAIL = "Failed to resume after server restart"


class StaleDebateRecovery:
    """Finds running or voting debates with an old heartbeat and restarts them.

    Each debate is claimed with a compare-and-swap on its heartbeat first, so
    two processes starting together never both resume the same debate.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        engine: DebateEngine,
        voting: "VotingCoordinator",
        tasks: TaskRegistry,
        config: DebateConfig,
    ):
        self.db = db
        self.engine = engine
        self.voting = voting
        self.tasks = tasks
        self.config = config

    def check_for_stale_debates(self) -> RecoveryReport:
        """Resume every stale debate. Raises only if stale debates cannot be queried."""
        threshold = utc_now() - timedelta(minutes=self.config.stale_after_minutes)
        logger.info(
            f"Checking for debates inactive since {threshold.isoformat()}",
            extra={"event_type": "stale_debate_check_start"},
        )

        stale = self.db.find_stale_debates(threshold)
        report = RecoveryReport()

        if not stale:
            logger.info("No stale debates found", extra={"event_type": "no_stale_debates"})
            return report

        logger.warning(
            f"Found {len(stale)} stale debate(s): {', '.join(d.id for d in stale)}",
            extra={"event_type": "stale_debates_found"},
        )

        for debate in stale:
            try:
                claimed = self._resume(debate)
            except Exception as e:
                logger.error(
                    f"Failed to resume stale debate {debate.id}: {e}",
                    extra={"event_type": "resume_stale_debate_failed", "debate_id": debate.id},
                )
                mark_debate_failed(self.db, debate.id, f"{RESUME_FAILED_DETAIL}: {e}")
                report.failed[debate.id] = str(e)
                continue

            if claimed:
                report.resumed.append(debate.id)
            else:
                report.skipped.append(debate.id)

        logger.info(
            f"Stale debate check complete. Resumed: {len(report.resumed)}, "
            f"failed: {len(report.failed)}, skipped: {len(report.skipped)}"
        )
        return report

    def _on_resume_error(self, debate_id: str):
        def handle(exc: BaseException) -> None:
            mark_debate_failed(self.db, debate_id, f"{RESUME_FAILED_DETAIL}: {exc}")

        return handle

    def _resume(self, debate: Debate) -> bool:
        """Claim and restart one debate. Returns False when another process owns it."""
        if debate.last_activity_at is None:
            raise ValueError(f"Debate {debate.id} has no heartbeat")

        if not self.db.claim_stale_debate(debate.id, debate.last_activity_at):
            logger.info(f"Debate {debate.id} was claimed by another process, skipping")
            return False

        closed = self.db.finalize_open_turns(debate.id, INTERRUPTED_MARKER)
        if closed:
            logger.info(f"Closed {closed} interrupted turn(s) of debate {debate.id}")

        self.db.insert_system_turn(
            debate.id, "The debate was interrupted and has been resumed."
        )

        if debate.status is DebateStatus.VOTING:
            coro = self.voting.run_vote(debate.id)
            name = f"vote-{debate.id}"
        else:
            coro = self.engine.run_debate(debate.id)
            name = f"debate-{debate.id}"

        self.tasks.spawn(coro, name=name, on_error=self._on_resume_error(debate.id))
        logger.info(
            f"Resumed stale debate {debate.id} ({debate.status.value})",
            extra={"event_type": "resume_stale_debate_success", "debate_id": debate.id},
        )
        return True
