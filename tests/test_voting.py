"""Tests for ballot parsing, tallying and the voting coordinator."""

import asyncio

import pytest
from conftest import HANG, FakeModelManager

from debate_engine.exceptions import VotingStateError
from debate_engine.flags import DatabaseFlagProvider
from debate_engine.models import OperatorFlags
from debate_engine.types import (
    INVALID_VOTE,
    NO_VALID_VOTES,
    TIE,
    DebateStatus,
    TurnOutcome,
)
from debate_engine.voting import VotingCoordinator, parse_ballot, tally_votes

ROSTER = ["m1", "m2", "m3", "m4"]


class TestParseBallot:
    def test_exact_name(self):
        assert parse_ballot("m2", ROSTER) == "m2"

    def test_case_insensitive_substring(self):
        roster = ["openai/gpt-4o", "anthropic/claude-3"]
        assert parse_ballot("The winner is OpenAI/GPT-4o.", roster) == "openai/gpt-4o"

    def test_no_match_is_invalid(self):
        assert parse_ballot("Nobody convinced me.", ROSTER) == INVALID_VOTE

    def test_longest_match_wins(self):
        roster = ["llama-3", "llama-3-70b"]
        assert parse_ballot("llama-3-70b", roster) == "llama-3-70b"


class TestTally:
    def test_clear_winner(self):
        tally = tally_votes({"m1": "X", "m2": "X", "m3": "Y", "m4": INVALID_VOTE}, ["X", "Y", "Z", "W"])

        assert tally.counts == {"X": 2, "Y": 1}
        assert tally.winner == "X"
        assert tally.is_tie is False
        assert tally.total_votes == 3
        assert tally.winning_votes == 2

    def test_tie(self):
        tally = tally_votes({"m1": "X", "m2": "Y", "m3": "X", "m4": "Y"}, ["X", "Y", "Z", "W"])

        assert tally.counts == {"X": 2, "Y": 2}
        assert tally.winner == TIE
        assert tally.is_tie is True
        assert sorted(tally.winners) == ["X", "Y"]

    def test_no_valid_votes(self):
        tally = tally_votes({"m1": INVALID_VOTE, "m2": "error"}, ROSTER)

        assert tally.winner == NO_VALID_VOTES
        assert tally.total_votes == 0
        assert tally.winning_votes == 0


def seed_debate(db, status=DebateStatus.RUNNING):
    debate = db.create_debate("d1", "Cats or dogs?", "Pets", ROSTER, max_turns=4)
    for index, speaker in enumerate(ROSTER, start=1):
        db.insert_turn("d1", speaker, index, content=f"{speaker} argues.", outcome=TurnOutcome.SUCCESS)
    if status is not DebateStatus.RUNNING:
        db.update_debate("d1", {"status": status})
    return debate


def ballots_for(choices):
    return FakeModelManager(lambda model, messages: choices[model])


def run_vote(coordinator, debate_id="d1"):
    return asyncio.run(coordinator.run_vote(debate_id))


def system_notices(db):
    return [turn.content for turn in db.list_turns("d1", chronological=True) if turn.is_system]


class TestVotingCoordinator:
    def test_votes_are_persisted_and_debate_finalized(self, db, flag_provider, debate_config):
        seed_debate(db)
        manager = ballots_for(
            {"m1": ["m2"], "m2": ["I pick ", "m2"], "m3": ["m3"], "m4": ["nobody"]}
        )

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result.ballots == {"m1": "m2", "m2": "m2", "m3": "m3", "m4": INVALID_VOTE}
        assert manager.models_called() == ROSTER
        votes = {vote.voter: vote.vote_for for vote in db.list_votes("d1")}
        assert votes == result.ballots

        debate = db.get_debate("d1")
        assert debate.status is DebateStatus.ENDED
        assert debate.winner == "m2"
        assert debate.winning_votes == 2
        assert debate.total_votes == 3
        assert debate.is_tie is False
        assert debate.ended_at is not None

        texts = system_notices(db)
        assert texts[0] == "The debate has ended. Voting has begun!"
        assert "m1 voted for m2." in texts
        assert "m4 cast an invalid vote." in texts
        assert texts[-2] == 'Vote tally: {"m2": 2, "m3": 1}'
        assert "m2 wins the debate" in texts[-1]

    def test_voting_prompt_excludes_failed_turns(self, db, flag_provider, debate_config):
        seed_debate(db)
        db.insert_turn("d1", "m1", 5, content="[Model timed out]", outcome=TurnOutcome.TIMEOUT)
        manager = ballots_for({model: ["m1"] for model in ROSTER})

        run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        prompt = manager.calls[0][1][-1]["content"]
        assert "m1: m1 argues." in prompt
        assert "timed out" not in prompt

    def test_tie_records_tied_models(self, db, flag_provider, debate_config):
        seed_debate(db)
        manager = ballots_for({"m1": ["m2"], "m2": ["m1"], "m3": ["m2"], "m4": ["m1"]})

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result.tally.is_tie
        debate = db.get_debate("d1")
        assert debate.winner == TIE
        assert debate.is_tie is True
        assert sorted(debate.tied_models) == ["m1", "m2"]
        assert "tie" in system_notices(db)[-1]

    def test_failed_voter_does_not_abort_round(self, db, flag_provider, debate_config):
        seed_debate(db)
        manager = ballots_for(
            {"m1": RuntimeError("gateway down"), "m2": [HANG], "m3": ["m3"], "m4": ["m3"]}
        )

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result.tally.winner == "m3"
        assert result.ballots["m1"] == "error"
        assert result.ballots["m2"] == "error"
        assert {vote.voter for vote in db.list_votes("d1")} == {"m3", "m4"}
        assert "m1 failed to cast a vote." in system_notices(db)
        assert db.get_debate("d1").total_votes == 2

    def test_resume_skips_existing_ballots(self, db, flag_provider, debate_config):
        seed_debate(db, DebateStatus.VOTING)
        db.insert_vote("d1", "m1", "m4")
        db.insert_vote("d1", "m2", "m4")
        manager = ballots_for({"m3": ["m4"], "m4": ["m1"]})

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert manager.models_called() == ["m3", "m4"]
        assert len(db.list_votes("d1")) == 4
        assert result.tally.winner == "m4"
        assert result.tally.winning_votes == 3
        assert "The debate has ended. Voting has begun!" not in system_notices(db)

    def test_disabled_voting_leaves_debate_untouched(self, db, flag_provider, debate_config):
        seed_debate(db)
        flag_provider.flags = OperatorFlags(enable_voting=False)
        manager = FakeModelManager()

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result is None
        assert manager.calls == []
        assert db.get_debate("d1").status is DebateStatus.RUNNING
        assert "Voting could not start: voting is disabled." in system_notices(db)

    def test_kill_switch_interrupts_round(self, db, flag_provider, debate_config):
        seed_debate(db)
        flag_provider.sequence = [OperatorFlags(), OperatorFlags(), OperatorFlags(kill_switch=True)]
        manager = ballots_for({model: ["m1"] for model in ROSTER})

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result is None
        assert manager.models_called() == ["m1"]
        assert len(db.list_votes("d1")) == 1
        debate = db.get_debate("d1")
        assert debate.status is DebateStatus.ABORTED
        assert debate.ended_at is not None
        assert "Voting was interrupted: kill switch is active." in system_notices(db)

    def test_kill_switch_frees_admission_once_cleared(self, db, debate_config):
        seed_debate(db)
        flags = DatabaseFlagProvider(db)

        def reply(model, messages):
            db.update_flags(kill_switch=True)
            return ["m1"]

        result = run_vote(VotingCoordinator(db, FakeModelManager(reply), flags, debate_config))
        db.update_flags(kill_switch=False)

        assert result is None
        assert db.get_debate("d1").status is DebateStatus.ABORTED
        assert db.count_active_debates() == 0

    def test_kill_switch_before_voting_aborts(self, db, flag_provider, debate_config):
        seed_debate(db)
        flag_provider.flags = OperatorFlags(kill_switch=True)
        manager = FakeModelManager()

        result = run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert result is None
        assert manager.calls == []
        assert db.get_debate("d1").status is DebateStatus.ABORTED

    @pytest.mark.parametrize(
        "status", [DebateStatus.ENDED, DebateStatus.ERROR, DebateStatus.ABORTED]
    )
    def test_terminal_debate_fails_loudly(self, db, flag_provider, debate_config, status):
        seed_debate(db, status)

        with pytest.raises(VotingStateError):
            run_vote(VotingCoordinator(db, FakeModelManager(), flag_provider, debate_config))

    def test_final_write_retries_with_minimal_fields(
        self, db, flag_provider, debate_config, monkeypatch
    ):
        seed_debate(db)
        manager = ballots_for({model: ["m3"] for model in ROSTER})
        original = db.update_debate
        attempts = []

        def flaky(debate_id, fields, expected_statuses=None):
            if fields.get("status") is DebateStatus.ENDED:
                attempts.append(set(fields))
                if len(attempts) == 1:
                    raise RuntimeError("column write failed")
            return original(debate_id, fields, expected_statuses=expected_statuses)

        monkeypatch.setattr(db, "update_debate", flaky)

        run_vote(VotingCoordinator(db, manager, flag_provider, debate_config))

        assert attempts[1] == {"status", "winner", "ended_at"}
        debate = db.get_debate("d1")
        assert debate.status is DebateStatus.ENDED
        assert debate.winner == "m3"
