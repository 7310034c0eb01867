"""Admission gate and wiring of the debate engine for the web application."""

import logging
import random

from fastapi import Request

from config.settings import AppConfig, CategoryPool
from debate_engine.core import DebateEngine
from debate_engine.database import DatabaseManager
from debate_engine.flags import DatabaseFlagProvider
from debate_engine.models import Debate, RecoveryReport
from debate_engine.recovery import StaleDebateRecovery
from debate_engine.tasks import TaskRegistry
from debate_engine.turn_executor import TurnExecutor
from debate_engine.voting import VotingCoordinator
from models.manager import ModelManager
from web.debate_setup_request import DebateSetupRequest

logger = logging.getLogger(__name__)


class DebateBlockedError(Exception):
    """A new debate cannot start right now."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DebateManager:
    """Owns the engine components and decides when a new debate may start."""

    def __init__(
        self,
        config: AppConfig,
        db: DatabaseManager,
        model_manager: ModelManager,
        tasks: TaskRegistry | None = None,
    ):
        self.config = config
        self.db = db
        self.model_manager = model_manager
        self.tasks = tasks or TaskRegistry()
        self.flags = DatabaseFlagProvider(db)

        self.turn_executor = TurnExecutor(db, model_manager, config.debate)
        self.voting = VotingCoordinator(db, model_manager, self.flags, config.debate)
        self.engine = DebateEngine(
            db, self.flags, self.turn_executor, config.debate, self.tasks, self.voting
        )
        self.recovery = StaleDebateRecovery(
            db, self.engine, self.voting, self.tasks, config.debate
        )

    def admission_block_reason(self) -> str | None:
        """Human-readable reason a new debate may not start, or None."""
        flags = self.flags.read()
        if flags.kill_switch:
            return "The kill switch is active."
        if flags.abort:
            return "The abort flag is set."
        if not flags.enable_new_debates:
            return "New debates are disabled."
        if flags.pause:
            return "Debates are paused."
        if self.db.count_active_debates() > 0:
            return "A debate is already in progress."
        return None

    def create_debate(self, setup: DebateSetupRequest) -> Debate:
        """Create and launch a debate. Raises DebateBlockedError when admission is refused."""
        reason = self.admission_block_reason()
        if reason:
            logger.info(f"Debate start refused: {reason}")
            raise DebateBlockedError(reason)

        debate = self.engine.create_debate(setup.topic, setup.category, setup.models)
        self.engine.launch(debate.id)
        return debate

    def _eligible_pools(self) -> dict[str, CategoryPool]:
        size = self.config.debate.roster_size
        eligible = {}
        for name, pool in self.config.scheduler.pools.items():
            if not pool.topics:
                continue
            if pool.split_halves:
                fits = len(pool.models) // 2 >= size - size // 2
            else:
                fits = len(pool.models) >= size
            if fits:
                eligible[name] = pool
        return eligible

    def pick_debate(self, rng: random.Random | None = None) -> DebateSetupRequest:
        """Choose a category, topic and roster from the configured pools."""
        rng = rng or random.Random()
        pools = self._eligible_pools()
        if not pools:
            raise DebateBlockedError("No scheduler pool can fill a roster.")

        category = rng.choice(list(pools))
        pool = pools[category]
        topic = rng.choice(pool.topics)
        size = self.config.debate.roster_size

        if pool.split_halves:
            # Half the roster from each half of the pool
            half = len(pool.models) // 2
            first_half = pool.models[:half]
            last_half = pool.models[-half:]
            from_first = size // 2
            models = rng.sample(first_half, from_first) + rng.sample(
                last_half, size - from_first
            )
        else:
            models = rng.sample(pool.models, size)

        return DebateSetupRequest(topic=topic, models=models, category=category)

    def schedule_next_debate(self, rng: random.Random | None = None) -> Debate:
        """Start a debate drawn from the pools if admission allows it."""
        reason = self.admission_block_reason()
        if reason:
            raise DebateBlockedError(reason)

        setup = self.pick_debate(rng)
        logger.info(
            f"Scheduler picked '{setup.topic}' in {setup.category} with {', '.join(setup.models)}"
        )
        return self.create_debate(setup)

    def resume_stale_debates(self) -> RecoveryReport:
        return self.recovery.check_for_stale_debates()

    async def shutdown(self) -> None:
        await self.tasks.cancel_all()


def get_debate_manager(request: Request) -> DebateManager:
    """FastAPI dependency returning the application's debate manager."""
    return request.app.state.debate_manager
