"""Tests for single turn execution and classification."""

import asyncio
import sqlite3

from conftest import HANG, FakeModelManager

from debate_engine.database import DatabaseManager
from debate_engine.turn_executor import TurnExecutor
from debate_engine.types import EMPTY_RESPONSE_MARKER, TIMEOUT_MARKER, TurnOutcome
from models.providers import GatewayError

MESSAGES = [{"role": "user", "content": "go"}]


def setup_debate(db: DatabaseManager) -> None:
    db.create_debate("d1", "Topic", "Cat", ["a", "b", "c", "d"], max_turns=40)


def run(executor: TurnExecutor, speaker: str = "a", turn_index: int = 1):
    return asyncio.run(executor.execute_turn("d1", speaker, turn_index, MESSAGES))


def test_successful_turn_is_persisted(db, debate_config) -> None:
    setup_debate(db)
    manager = FakeModelManager(lambda model, messages: ["Tea ", "is ", "superior."])
    result = run(TurnExecutor(db, manager, debate_config))

    assert result.outcome is TurnOutcome.SUCCESS
    assert result.content == "Tea is superior."
    turn = db.get_turn(result.turn_id)
    assert turn.content == "Tea is superior."
    assert turn.token_count == 3
    assert turn.ttft_ms is not None
    assert turn.finished_at is not None
    assert turn.outcome is TurnOutcome.SUCCESS
    assert manager.calls == [("a", MESSAGES)]


def test_empty_stream_is_an_error_not_success(db, debate_config) -> None:
    setup_debate(db)
    result = run(TurnExecutor(db, FakeModelManager(lambda m, msgs: []), debate_config))

    assert result.outcome is TurnOutcome.ERROR
    turn = db.get_turn(result.turn_id)
    assert turn.content == EMPTY_RESPONSE_MARKER
    assert turn.finished_at is not None


def test_whitespace_only_stream_is_an_error(db, debate_config) -> None:
    setup_debate(db)
    result = run(TurnExecutor(db, FakeModelManager(lambda m, msgs: ["  ", "\n"]), debate_config))

    assert result.outcome is TurnOutcome.ERROR
    assert db.get_turn(result.turn_id).content == EMPTY_RESPONSE_MARKER


def test_first_token_timeout_is_classified_and_finalized(db, debate_config) -> None:
    setup_debate(db)
    result = run(TurnExecutor(db, FakeModelManager(lambda m, msgs: [HANG]), debate_config))

    assert result.outcome is TurnOutcome.TIMEOUT
    turn = db.get_turn(result.turn_id)
    assert turn.content == TIMEOUT_MARKER
    assert turn.finished_at is not None
    assert turn.outcome is TurnOutcome.TIMEOUT


def test_slow_stream_after_first_token_is_not_a_timeout(db, debate_config) -> None:
    setup_debate(db)

    async def slow_tail():
        yield "quick start"
        await asyncio.sleep(debate_config.first_token_timeout_seconds * 2)
        yield " slow finish"

    class SlowManager:
        def stream_response(self, model_id, messages):
            return slow_tail()

    result = run(TurnExecutor(db, SlowManager(), debate_config))

    assert result.outcome is TurnOutcome.SUCCESS
    assert result.content == "quick start slow finish"


def test_gateway_error_before_output(db, debate_config) -> None:
    setup_debate(db)
    manager = FakeModelManager(lambda m, msgs: GatewayError(500, "boom"))
    result = run(TurnExecutor(db, manager, debate_config))

    assert result.outcome is TurnOutcome.ERROR
    turn = db.get_turn(result.turn_id)
    assert turn.content.startswith("[Error:")
    assert turn.finished_at is not None


def test_partial_content_survives_mid_stream_failure(db, debate_config) -> None:
    setup_debate(db)
    manager = FakeModelManager(
        lambda m, msgs: ["Half an ", "argument", RuntimeError("connection reset")]
    )
    result = run(TurnExecutor(db, manager, debate_config))

    assert result.outcome is TurnOutcome.ERROR
    turn = db.get_turn(result.turn_id)
    assert turn.content.startswith("Half an argument ")
    assert "connection reset" in turn.content
    assert turn.token_count == 2
    assert turn.finished_at is not None


def test_turn_insert_failure_returns_no_turn_id(db, debate_config, monkeypatch) -> None:
    setup_debate(db)

    def broken_insert(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, "insert_turn", broken_insert)
    manager = FakeModelManager()
    result = run(TurnExecutor(db, manager, debate_config))

    assert result.outcome is TurnOutcome.ERROR
    assert result.turn_id is None
    assert manager.calls == []


def test_every_created_turn_is_finalized(db, debate_config) -> None:
    setup_debate(db)
    scripts = iter([["ok"], [], [HANG], GatewayError(503, "down"), ["a", ValueError("x")]])
    manager = FakeModelManager(lambda m, msgs: next(scripts))
    executor = TurnExecutor(db, manager, debate_config)

    for index in range(1, 6):
        run(executor, turn_index=index)

    turns = db.list_turns("d1")
    assert len(turns) == 5
    assert all(turn.finished_at is not None for turn in turns)
    assert all(turn.outcome is not None for turn in turns)


def test_failed_final_write_still_closes_turn(db, debate_config, monkeypatch) -> None:
    setup_debate(db)
    original = db.update_turn
    failures = []

    def locked_once(turn_id, **fields):
        if "content" in fields and "finished_at" in fields and not failures:
            failures.append(turn_id)
            raise sqlite3.OperationalError("database is locked")
        return original(turn_id, **fields)

    monkeypatch.setattr(db, "update_turn", locked_once)
    manager = FakeModelManager(lambda m, msgs: ["Complete ", "thought."])
    result = run(TurnExecutor(db, manager, debate_config))

    assert failures == [result.turn_id]
    assert result.outcome is TurnOutcome.ERROR
    turn = db.get_turn(result.turn_id)
    assert turn.finished_at is not None
    assert turn.outcome is TurnOutcome.ERROR
