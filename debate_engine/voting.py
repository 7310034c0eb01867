"""Voting phase: ballots, tally and debate finalization."""

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from config.settings import DebateConfig

from .exceptions import DebateNotFoundError, VotingStateError
from .flags import FlagProvider
from .models import VoteTally, VotingResult
from .prompt_builder import build_voting_prompt
from .types import (
    ACTIVE_STATUSES,
    ERROR_BALLOT,
    INVALID_VOTE,
    NO_VALID_VOTES,
    TIE,
    DebateStatus,
    TurnOutcome,
)
from .utils import utc_now

if TYPE_CHECKING:
    from models.manager import ModelManager

    from .database import DatabaseManager

logger = logging.getLogger(__name__)

KILL_SWITCH_REASON = "kill switch is active"


def parse_ballot(reply: str, roster: Sequence[str]) -> str:
    """Roster member named in ``reply``, or ``invalid_vote``.

    Matching is a case-insensitive substring test. When several ids match, the
    longest wins so that an id which is a prefix of another cannot shadow it.
    """
    lowered = reply.lower()
    matches = [model for model in roster if model.lower() in lowered]
    if not matches:
        return INVALID_VOTE
    return max(matches, key=len)


def tally_votes(ballots: Mapping[str, str], roster: Sequence[str]) -> VoteTally:
    """Count valid ballots and decide the winner.

    Only votes for roster members count. Zero valid votes gives
    ``no_valid_votes``; several candidates sharing the top count give ``tie``.
    """
    counts: dict[str, int] = {}
    for model in roster:
        votes = sum(1 for vote_for in ballots.values() if vote_for == model)
        if votes:
            counts[model] = votes

    total_votes = sum(counts.values())
    if total_votes == 0:
        return VoteTally(
            counts={},
            winner=NO_VALID_VOTES,
            winners=[],
            winning_votes=0,
            total_votes=0,
            is_tie=False,
        )

    winning_votes = max(counts.values())
    winners = [model for model, votes in counts.items() if votes == winning_votes]
    is_tie = len(winners) > 1

    return VoteTally(
        counts=counts,
        winner=TIE if is_tie else winners[0],
        winners=winners,
        winning_votes=winning_votes,
        total_votes=total_votes,
        is_tie=is_tie,
    )


def describe_result(tally: VoteTally) -> str:
    if tally.winner == NO_VALID_VOTES:
        return "No valid votes were cast. The debate ends without a winner."
    if tally.is_tie:
        return (
            f"The debate ends in a tie between {', '.join(tally.winners)} "
            f"with {tally.winning_votes} votes each!"
        )
    return f"{tally.winner} wins the debate with {tally.winning_votes} of {tally.total_votes} votes!"


class VotingCoordinator:
    """Asks every participant to name the best debater and records the result.

    Ballots are persisted one at a time. A resumed round skips voters that
    already have a ballot stored.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        model_manager: "ModelManager",
        flag_provider: FlagProvider,
        config: DebateConfig,
    ):
        self.db = db
        self.model_manager = model_manager
        self.flag_provider = flag_provider
        self.config = config

    def _notice(self, debate_id: str, message: str) -> None:
        try:
            self.db.insert_system_turn(debate_id, message)
        except Exception as e:
            logger.error(f"Failed to post system notice for debate {debate_id}: {e}")

    def _voting_blocked(self) -> str | None:
        flags = self.flag_provider.read()
        if flags.kill_switch:
            return KILL_SWITCH_REASON
        if not flags.enable_voting:
            return "voting is disabled"
        return None

    def _abort_on_kill_switch(self, debate_id: str, blocked: str) -> None:
        """Move an active debate to ``aborted`` when the kill switch stopped voting."""
        if blocked != KILL_SWITCH_REASON:
            return
        try:
            self.db.update_debate(
                debate_id,
                {
                    "status": DebateStatus.ABORTED,
                    "ended_at": utc_now(),
                    "detail": "Voting stopped by kill switch",
                },
                expected_statuses=ACTIVE_STATUSES,
            )
        except Exception as e:
            logger.error(f"Failed to abort debate {debate_id} after kill switch: {e}")

    async def _ask(self, voter: str, messages: list[dict[str, str]]) -> str:
        fragments = []
        async for fragment in self.model_manager.stream_response(voter, messages):
            fragments.append(fragment)
        return "".join(fragments)

    def _enter_voting(self, debate_id: str) -> DebateStatus:
        """Conditionally move the debate to ``voting``; returns the previous status."""
        debate = self.db.get_debate(debate_id)
        if debate is None:
            raise DebateNotFoundError(debate_id)
        if debate.status.is_terminal:
            raise VotingStateError(
                f"Cannot vote on debate {debate_id} with status {debate.status.value}"
            )

        changed = self.db.update_debate(
            debate_id,
            {"status": DebateStatus.VOTING, "last_activity_at": utc_now()},
            expected_statuses=ACTIVE_STATUSES,
        )
        if not changed:
            raise VotingStateError(f"Debate {debate_id} left the active states before voting")
        return debate.status

    def _finalize(self, debate_id: str, tally: VoteTally) -> None:
        ended_at = utc_now()
        fields = {
            "status": DebateStatus.ENDED,
            "winner": tally.winner,
            "ended_at": ended_at,
            "winning_votes": tally.winning_votes,
            "total_votes": tally.total_votes,
            "is_tie": tally.is_tie,
            "tied_models": tally.winners if tally.is_tie else [],
            "last_activity_at": ended_at,
        }
        try:
            changed = self.db.update_debate(
                debate_id, fields, expected_statuses=(DebateStatus.VOTING,)
            )
        except Exception as e:
            logger.error(f"Final update for debate {debate_id} failed, retrying minimal update: {e}")
            changed = self.db.update_debate(
                debate_id,
                {"status": DebateStatus.ENDED, "winner": tally.winner, "ended_at": ended_at},
                expected_statuses=(DebateStatus.VOTING,),
            )

        if not changed:
            logger.warning(f"Debate {debate_id} was no longer voting when results were saved")

    async def run_vote(self, debate_id: str) -> VotingResult | None:
        """Run (or resume) the voting round of ``debate_id``.

        Returns None when flags forbid voting. The kill switch aborts the debate;
        disabled voting leaves it as it is.
        """
        log_extra = {"debate_id": debate_id}

        blocked = self._voting_blocked()
        if blocked:
            logger.warning(
                f"Voting for debate {debate_id} skipped: {blocked}",
                extra={**log_extra, "event_type": "voting_blocked"},
            )
            self._notice(debate_id, f"Voting could not start: {blocked}.")
            self._abort_on_kill_switch(debate_id, blocked)
            return None

        previous_status = self._enter_voting(debate_id)
        debate = self.db.get_debate(debate_id)
        if debate is None:
            raise DebateNotFoundError(debate_id)
        roster = debate.participants

        if previous_status is DebateStatus.RUNNING:
            self._notice(debate_id, "The debate has ended. Voting has begun!")
        logger.info(
            f"Voting started for debate {debate_id}",
            extra={**log_extra, "event_type": "voting_started"},
        )

        transcript = [
            turn
            for turn in self.db.list_turns(debate_id, include_system=False)
            if turn.outcome is TurnOutcome.SUCCESS
        ]
        ballots = {vote.voter: vote.vote_for for vote in self.db.list_votes(debate_id)}
        if ballots:
            logger.info(f"Resuming vote for {debate_id} with {len(ballots)} ballots already cast")

        for voter in roster:
            if voter in ballots:
                continue

            blocked = self._voting_blocked()
            if blocked:
                logger.warning(
                    f"Voting for debate {debate_id} interrupted: {blocked}",
                    extra={**log_extra, "event_type": "voting_interrupted"},
                )
                self._notice(debate_id, f"Voting was interrupted: {blocked}.")
                self._abort_on_kill_switch(debate_id, blocked)
                return None

            messages = build_voting_prompt(debate.topic, transcript, roster)
            try:
                reply = await asyncio.wait_for(
                    self._ask(voter, messages),
                    timeout=self.config.first_token_timeout_seconds,
                )
            except Exception as e:
                logger.error(
                    f"{voter} failed to vote in debate {debate_id}: {e}",
                    extra={**log_extra, "event_type": "vote_error", "model": voter},
                )
                ballots[voter] = ERROR_BALLOT
                self._notice(debate_id, f"{voter} failed to cast a vote.")
                continue

            vote_for = parse_ballot(reply, roster)
            self.db.insert_vote(debate_id, voter, vote_for)
            ballots[voter] = vote_for
            self.db.update_debate(debate_id, {"last_activity_at": utc_now()})

            if vote_for == INVALID_VOTE:
                self._notice(debate_id, f"{voter} cast an invalid vote.")
            else:
                self._notice(debate_id, f"{voter} voted for {vote_for}.")
            logger.info(
                f"{voter} voted for {vote_for}",
                extra={**log_extra, "event_type": "vote_cast", "model": voter},
            )

        ordered = {voter: ballots[voter] for voter in roster if voter in ballots}
        tally = tally_votes(ordered, roster)

        self._notice(debate_id, f"Vote tally: {json.dumps(tally.counts)}")
        self._notice(debate_id, describe_result(tally))
        self._finalize(debate_id, tally)

        logger.info(
            f"Debate {debate_id} ended, winner: {tally.winner}",
            extra={**log_extra, "event_type": "debate_ended"},
        )
        return VotingResult(debate_id=debate_id, ballots=ordered, tally=tally)
