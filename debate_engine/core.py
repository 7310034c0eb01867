"""Core debate engine: debate creation and the turn loop."""

import asyncio
import logging
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING

from config.settings import DebateConfig

from .exceptions import DebateNotFoundError, RosterValidationError
from .flags import FlagProvider
from .models import Debate, LoopResult, Turn
from .prompt_builder import build_argument_prompt
from .tasks import TaskRegistry
from .turn_executor import TurnExecutor
from .types import (
    ACTIVE_STATUSES,
    ANNOUNCEMENT_TURN_INDEX,
    MOTION_PHRASE,
    DebateStatus,
    LoopExit,
    TurnOutcome,
)
from .utils import utc_now

if TYPE_CHECKING:
    from .database import DatabaseManager
    from .voting import VotingCoordinator

logger = logging.getLogger(__name__)


def select_speaker(roster: Sequence[str], participant_turn_count: int) -> str:
    """Strict round robin over the roster."""
    return roster[participant_turn_count % len(roster)]


def motion_passed(roster: Sequence[str], turns: Sequence[Turn]) -> bool:
    """True when every roster member who has spoken ended their latest turn with the motion.

    Members with no turns yet are not counted. With nobody having spoken the
    motion cannot pass.
    """
    latest: dict[str, Turn] = {}
    for turn in sorted(turns, key=lambda t: (t.turn_index, t.id)):
        if turn.speaker in roster:
            latest[turn.speaker] = turn

    if not latest:
        return False
    return all(MOTION_PHRASE in turn.content for turn in latest.values())


def mark_debate_failed(db: "DatabaseManager", debate_id: str, detail: str) -> bool:
    """Move an active debate to ``error``. Returns whether the row changed."""
    try:
        changed = db.update_debate(
            debate_id,
            {"status": DebateStatus.ERROR, "ended_at": utc_now(), "detail": detail},
            expected_statuses=ACTIVE_STATUSES,
        )
    except Exception as e:
        logger.error(f"Failed to mark debate {debate_id} as error ({detail}): {e}")
        return False

    if changed:
        logger.error(
            f"Debate {debate_id} failed: {detail}",
            extra={"event_type": "debate_error", "debate_id": debate_id},
        )
    return changed


class DebateEngine:
    """Runs debates turn by turn from persisted state.

    The loop keeps no state that cannot be rebuilt from the database, so it can
    be re-entered for any running debate after a restart.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        flag_provider: FlagProvider,
        turn_executor: TurnExecutor,
        config: DebateConfig,
        tasks: TaskRegistry,
        voting: "VotingCoordinator | None" = None,
    ):
        self.db = db
        self.flag_provider = flag_provider
        self.turn_executor = turn_executor
        self.config = config
        self.tasks = tasks
        self.voting = voting

    def validate_roster(self, roster: Sequence[str]) -> list[str]:
        models = [model.strip() for model in roster]
        if len(models) != self.config.roster_size:
            raise RosterValidationError(
                f"Exactly {self.config.roster_size} models are required, got {len(models)}"
            )
        if any(not model for model in models):
            raise RosterValidationError("Model identifiers must not be empty")
        if len(set(models)) != len(models):
            raise RosterValidationError("Model identifiers must be unique")
        return models

    def create_debate(
        self,
        topic: str,
        category: str,
        roster: Sequence[str],
        debate_id: str | None = None,
    ) -> Debate:
        """Persist a new running debate and its opening announcement."""
        if not topic.strip():
            raise RosterValidationError("Topic must not be empty")
        models = self.validate_roster(roster)

        debate = self.db.create_debate(
            debate_id or str(uuid.uuid4()),
            topic.strip(),
            category,
            models,
            max_turns=self.config.max_turns,
        )
        self.db.insert_system_turn(
            debate.id,
            f"A new debate has started! Topic: \"{debate.topic}\". "
            f"Debaters: {', '.join(models)}.",
            turn_index=ANNOUNCEMENT_TURN_INDEX,
        )
        logger.info(
            f"Debate {debate.id} created in category '{category}'",
            extra={"event_type": "debate_created", "debate_id": debate.id},
        )
        return debate

    def launch(self, debate_id: str) -> asyncio.Task:
        """Run the loop for ``debate_id`` in the background."""
        return self.tasks.spawn(
            self.run_debate(debate_id),
            name=f"debate-{debate_id}",
            on_error=lambda exc: mark_debate_failed(
                self.db, debate_id, f"Debate loop crashed: {exc}"
            ),
        )

    def hand_off_to_voting(self, debate_id: str) -> None:
        if self.voting is None:
            raise RuntimeError("No voting coordinator configured")

        self.tasks.spawn(
            self.voting.run_vote(debate_id),
            name=f"vote-{debate_id}",
            on_error=lambda exc: mark_debate_failed(
                self.db, debate_id, f"Voting failed: {exc}"
            ),
        )

    def _notice(self, debate_id: str, message: str) -> None:
        try:
            self.db.insert_system_turn(debate_id, message)
        except Exception as e:
            logger.error(f"Failed to post system notice for debate {debate_id}: {e}")

    def _end(self, debate_id: str, status: DebateStatus, detail: str) -> None:
        """Terminal write for a running debate. Failures are logged, not retried."""
        try:
            self.db.update_debate(
                debate_id,
                {"status": status, "ended_at": utc_now(), "detail": detail},
                expected_statuses=(DebateStatus.RUNNING,),
            )
        except Exception as e:
            logger.error(f"Failed to set debate {debate_id} to {status.value}: {e}")

    async def _wait_while_paused(self, debate_id: str) -> None:
        logger.info(
            f"Debate {debate_id} paused",
            extra={"event_type": "debate_paused", "debate_id": debate_id},
        )
        self._notice(debate_id, "The debate is currently paused. Waiting to resume...")

        while True:
            await asyncio.sleep(self.config.pause_poll_seconds)
            try:
                paused = self.flag_provider.read().pause
            except Exception as e:
                logger.error(f"Error re-fetching flags during pause for {debate_id}: {e}")
                break
            if not paused:
                break
            try:
                self.db.update_debate(debate_id, {"last_activity_at": utc_now()})
            except Exception as e:
                logger.warning(f"Heartbeat during pause failed for {debate_id}: {e}")

        logger.info(
            f"Debate {debate_id} resumed",
            extra={"event_type": "debate_resumed", "debate_id": debate_id},
        )
        self._notice(debate_id, "The debate has resumed.")

    async def run_debate(self, debate_id: str) -> LoopResult:
        """Run turns until the debate hands off to voting or stops."""
        debate = self.db.get_debate(debate_id)
        if debate is None:
            raise DebateNotFoundError(debate_id)

        roster = debate.participants
        max_turns = debate.max_turns
        max_iterations = max_turns * self.config.loop_iteration_multiplier
        iterations = 0
        log_extra = {"debate_id": debate_id}

        logger.info(f"Running debate {debate_id}: '{debate.topic}' ({max_turns} turns)")

        while True:
            try:
                flags = self.flag_provider.read()
            except Exception as e:
                logger.error(
                    f"Flag fetch failed for debate {debate_id}: {e}",
                    extra={**log_extra, "event_type": "flags_fetch_error"},
                )
                self._end(debate_id, DebateStatus.ERROR, f"Flag fetch failed: {e}")
                return LoopResult(LoopExit.FLAG_ERROR, str(e))

            if flags.stops_debate:
                reason = "kill switch" if flags.kill_switch else "abort flag"
                logger.warning(
                    f"Debate {debate_id} stopped by {reason}",
                    extra={**log_extra, "event_type": "debate_aborted"},
                )
                self._end(debate_id, DebateStatus.ABORTED, f"Stopped by {reason}")
                self._notice(debate_id, "The debate has been stopped by the operators.")
                return LoopResult(LoopExit.ABORTED, reason)

            if flags.pause:
                await self._wait_while_paused(debate_id)
                continue

            iterations += 1
            if iterations > max_iterations:
                detail = f"Safety exit after {max_iterations} loop iterations"
                logger.error(
                    f"Debate {debate_id}: {detail}",
                    extra={**log_extra, "event_type": "loop_safety_exit"},
                )
                self._end(debate_id, DebateStatus.ERROR, detail)
                return LoopResult(LoopExit.SAFETY_EXIT, detail)

            try:
                turns = self.db.list_turns(debate_id, include_system=False)
            except Exception as e:
                logger.error(
                    f"Turn fetch failed for debate {debate_id}: {e}",
                    extra={**log_extra, "event_type": "turns_fetch_error"},
                )
                self._end(debate_id, DebateStatus.ERROR, f"Failed to fetch turns: {e}")
                return LoopResult(LoopExit.TURNS_FETCH_ERROR, str(e))

            turn_count = len(turns)
            if turn_count >= max_turns:
                logger.info(
                    f"Debate {debate_id} reached {max_turns} turns, proceeding to voting",
                    extra={**log_extra, "event_type": "max_turns_reached"},
                )
                self.hand_off_to_voting(debate_id)
                return LoopResult(LoopExit.VOTING, "max turns reached")

            speaker = select_speaker(roster, turn_count)
            turn_number = turn_count + 1
            history = [turn for turn in turns if turn.outcome is TurnOutcome.SUCCESS]
            messages = build_argument_prompt(
                debate.topic,
                history,
                speaker,
                roster,
                max_turns,
                turn_number,
                force_motion=flags.motion_to_end_debate,
                history_window=self.config.history_window,
                max_reply_words=self.config.max_reply_words,
            )

            result = await self.turn_executor.execute_turn(
                debate_id, speaker, turn_number, messages
            )

            if result.turn_id is None:
                detail = f"Turn handler critical error: {result.message}"
                self._end(debate_id, DebateStatus.ERROR, detail)
                return LoopResult(LoopExit.TURN_HANDLER_CRITICAL, detail)

            if result.outcome is TurnOutcome.TIMEOUT:
                skipped = 1 + sum(1 for turn in turns if turn.outcome is TurnOutcome.TIMEOUT)
                self._notice(
                    debate_id,
                    f"{speaker} timed out and was skipped "
                    f"({skipped}/{self.config.max_skipped_turns}).",
                )
                if skipped >= self.config.max_skipped_turns:
                    detail = f"Aborted after {skipped} model timeouts."
                    self._end(debate_id, DebateStatus.ERROR, detail)
                    self._notice(debate_id, f"Debate aborted after {skipped} model timeouts.")
                    return LoopResult(LoopExit.MAX_SKIPS, detail)

            elif result.outcome is TurnOutcome.ERROR:
                logger.warning(
                    f"Issue processing turn {turn_number} for {speaker}: {result.message}",
                    extra={**log_extra, "event_type": "turn_processing_issue", "model": speaker},
                )

            elif turn_number < max_turns:
                finished = Turn(
                    id=result.turn_id,
                    debate_id=debate_id,
                    speaker=speaker,
                    turn_index=turn_number,
                    content=result.content,
                    outcome=TurnOutcome.SUCCESS,
                )
                if motion_passed(roster, [*turns, finished]):
                    logger.info(
                        f"Motion to end debate {debate_id} passed",
                        extra={**log_extra, "event_type": "motion_passed"},
                    )
                    self._notice(
                        debate_id,
                        "All debaters have motioned to end the debate. Proceeding to voting.",
                    )
                    self.hand_off_to_voting(debate_id)
                    return LoopResult(LoopExit.VOTING, "motion to end debate passed")

            self.db.update_debate(
                debate_id,
                {
                    "current_turn_index": turn_number,
                    "current_model": select_speaker(roster, turn_number),
                    "last_activity_at": utc_now(),
                },
            )

            await asyncio.sleep(self.config.turn_delay_seconds)
