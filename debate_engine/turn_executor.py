"""Execution of a single streamed model turn."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import TurnResult
from .types import EMPTY_RESPONSE_MARKER, TIMEOUT_MARKER, TurnOutcome
from .utils import utc_now

if TYPE_CHECKING:
    from config.settings import DebateConfig
    from models.manager import ModelManager

    from .database import DatabaseManager

logger = logging.getLogger(__name__)


@dataclass
class _StreamState:
    fragments: list[str] = field(default_factory=list)
    ttft_ms: int | None = None
    last_flush: float = 0.0

    @property
    def content(self) -> str:
        return "".join(self.fragments)

    @property
    def token_count(self) -> int:
        return len(self.fragments)


def error_marker(message: str) -> str:
    return f"[Error: {message}]"


class TurnExecutor:
    """Streams one participant's reply into an eagerly created turn row.

    Every turn row this executor creates is finalized with ``finished_at`` and
    an outcome before :meth:`execute_turn` returns.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        model_manager: "ModelManager",
        config: "DebateConfig",
    ):
        self.db = db
        self.model_manager = model_manager
        self.config = config

    async def execute_turn(
        self,
        debate_id: str,
        speaker: str,
        turn_index: int,
        messages: list[dict[str, str]],
    ) -> TurnResult:
        log_extra = {"debate_id": debate_id, "model": speaker}

        try:
            turn = self.db.insert_turn(debate_id, speaker, turn_index)
        except Exception as e:
            logger.error(
                f"Could not create turn {turn_index} for {speaker}: {e}",
                extra={**log_extra, "event_type": "turn_create_failed"},
            )
            return TurnResult(
                outcome=TurnOutcome.ERROR,
                turn_id=None,
                message=f"Could not create turn: {e}",
            )

        state = _StreamState()
        stream = self.model_manager.stream_response(speaker, messages)
        try:
            outcome, content, message = await self._consume(turn.id, stream, state)
        finally:
            await stream.aclose()

        try:
            self.db.update_turn(
                turn.id,
                content=content,
                token_count=state.token_count,
                ttft_ms=state.ttft_ms,
                finished_at=utc_now(),
                outcome=outcome,
            )
        except Exception as e:
            return self._finalize_minimal(turn.id, turn_index, speaker, e, log_extra)

        if outcome is TurnOutcome.SUCCESS:
            logger.info(
                f"Turn {turn_index} by {speaker} finished with {state.token_count} fragments",
                extra={**log_extra, "event_type": "turn_success", "turn_id": turn.id},
            )
        else:
            logger.warning(
                f"Turn {turn_index} by {speaker} ended with {outcome.value}: {message}",
                extra={**log_extra, "event_type": f"turn_{outcome.value}", "turn_id": turn.id},
            )

        return TurnResult(
            outcome=outcome,
            turn_id=turn.id,
            content=content,
            message=message,
            ttft_ms=state.ttft_ms,
        )

    def _finalize_minimal(
        self,
        turn_id: int,
        turn_index: int,
        speaker: str,
        error: Exception,
        log_extra: dict[str, str],
    ) -> TurnResult:
        """Close a turn whose final write failed, keeping only the required fields."""
        logger.error(
            f"Final update of turn {turn_index} for {speaker} failed, retrying: {error}",
            extra={**log_extra, "event_type": "turn_finalize_failed", "turn_id": turn_id},
        )
        try:
            self.db.update_turn(
                turn_id, finished_at=utc_now(), outcome=TurnOutcome.ERROR
            )
        except Exception as retry_error:
            logger.error(f"Retry of final update for turn {turn_id} failed: {retry_error}")

        return TurnResult(
            outcome=TurnOutcome.ERROR,
            turn_id=turn_id,
            message=f"Could not finalize turn: {error}",
        )

    async def _consume(
        self,
        turn_id: int,
        stream: AsyncIterator[str],
        state: _StreamState,
    ) -> tuple[TurnOutcome, str, str]:
        """Drain ``stream`` into ``state`` and classify the result."""
        started = time.monotonic()

        try:
            first = await asyncio.wait_for(
                anext(stream), timeout=self.config.first_token_timeout_seconds
            )
        except StopAsyncIteration:
            return TurnOutcome.ERROR, EMPTY_RESPONSE_MARKER, "Model returned empty response"
        except asyncio.TimeoutError:
            return (
                TurnOutcome.TIMEOUT,
                TIMEOUT_MARKER,
                f"No output within {self.config.first_token_timeout_seconds:g}s",
            )
        except Exception as e:
            return TurnOutcome.ERROR, error_marker(str(e)), str(e)

        now = time.monotonic()
        state.ttft_ms = int((now - started) * 1000)
        state.fragments.append(first)
        state.last_flush = now

        try:
            self.db.update_turn(
                turn_id,
                content=state.content,
                token_count=state.token_count,
                ttft_ms=state.ttft_ms,
            )

            async for fragment in stream:
                state.fragments.append(fragment)
                now = time.monotonic()
                if now - state.last_flush >= self.config.content_flush_seconds:
                    self.db.update_turn(
                        turn_id, content=state.content, token_count=state.token_count
                    )
                    state.last_flush = now
        except Exception as e:
            partial = state.content
            marker = error_marker(str(e))
            content = f"{partial} {marker}" if partial.strip() else marker
            return TurnOutcome.ERROR, content, str(e)

        content = state.content
        if not content.strip():
            return TurnOutcome.ERROR, EMPTY_RESPONSE_MARKER, "Model returned empty response"
        return TurnOutcome.SUCCESS, content, ""
