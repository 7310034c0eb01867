"""Tracking of fire-and-forget background tasks."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException], None]


class TaskRegistry:
    """Holds strong references to background tasks and reports their failures."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active(self) -> list[asyncio.Task[Any]]:
        return [task for task in self._tasks if not task.done()]

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str,
        on_error: ErrorCallback | None = None,
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` and keep it alive until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._on_done(done, on_error))
        logger.debug(f"Spawned background task {name}")
        return task

    def _on_done(self, task: asyncio.Task[Any], on_error: ErrorCallback | None) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.info(f"Background task {task.get_name()} cancelled")
            return

        exc = task.exception()
        if exc is None:
            return

        logger.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=exc,
            extra={"event_type": "task_failed"},
        )
        if on_error is not None:
            try:
                on_error(exc)
            except Exception as callback_error:
                logger.error(
                    f"Error callback for {task.get_name()} failed: {callback_error}"
                )

    async def wait_all(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done callbacks run before re-checking the set
            await asyncio.sleep(0)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            await asyncio.sleep(0)
