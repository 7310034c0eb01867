"""Pytest configuration and shared fixtures.

Provides a temporary SQLite database, fast debate settings and scripted
stand-ins for the model gateway and operator flags.
"""

import asyncio
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from config.settings import AppConfig, DebateConfig, SystemConfig
from debate_engine.database import DatabaseManager
from debate_engine.flags import FlagProvider
from debate_engine.models import OperatorFlags

# Fragment that makes the fake stream block until cancelled
HANG = object()

ReplyScript = Callable[[str, list[dict[str, str]]], Any]


class FakeModelManager:
    """Scripted replacement for ModelManager.

    ``reply(model, messages)`` returns an iterable of fragments, or an
    exception to raise before the first fragment. Fragments may themselves be
    exceptions (raised mid-stream) or ``HANG``.
    """

    def __init__(self, reply: ReplyScript | None = None):
        self.reply = reply or (lambda model, messages: [f"{model} makes a point."])
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    async def stream_response(self, model_id: str, messages: list[dict[str, str]]):
        self.calls.append((model_id, messages))
        result = self.reply(model_id, messages)
        if isinstance(result, BaseException):
            raise result
        for fragment in result:
            if isinstance(fragment, BaseException):
                raise fragment
            if fragment is HANG:
                await asyncio.sleep(3600)
            yield fragment

    stream_direct = stream_response

    def models_called(self) -> list[str]:
        return [model for model, _ in self.calls]


class FakeFlagProvider(FlagProvider):
    """Flag provider whose snapshot tests can change or break."""

    def __init__(self, flags: OperatorFlags | None = None):
        self.flags = flags or OperatorFlags()
        self.error: Exception | None = None
        self.reads = 0
        self.sequence: list[OperatorFlags] = []

    def read(self) -> OperatorFlags:
        self.reads += 1
        if self.error is not None:
            raise self.error
        if self.sequence:
            self.flags = self.sequence.pop(0)
        return self.flags


@pytest.fixture
def db(tmp_path: Path) -> DatabaseManager:
    """Fresh database per test."""
    return DatabaseManager(tmp_path / "debates.db")


@pytest.fixture
def four_participants() -> list[str]:
    """Provide four participant IDs for standard debates."""
    return ["model_a", "model_b", "model_c", "model_d"]


@pytest.fixture
def sample_debate_topic() -> str:
    return "Should artificial intelligence be regulated by governments?"


@pytest.fixture
def debate_config() -> DebateConfig:
    """Debate settings with pacing delays removed."""
    return DebateConfig(
        turn_delay_seconds=0.0,
        pause_poll_seconds=0.01,
        first_token_timeout_seconds=0.2,
        content_flush_seconds=0.0,
    )


@pytest.fixture
def app_config(tmp_path: Path, debate_config: DebateConfig) -> AppConfig:
    return AppConfig(
        debate=debate_config,
        system=SystemConfig(
            database_path=str(tmp_path / "app.db"),
            server_token="test-token",
        ),
    )


@pytest.fixture
def flag_provider() -> FakeFlagProvider:
    return FakeFlagProvider()


def fragments(text: str, size: int = 5) -> Iterable[str]:
    """Split ``text`` into fixed-size fragments."""
    return [text[i : i + size] for i in range(0, len(text), size)]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
