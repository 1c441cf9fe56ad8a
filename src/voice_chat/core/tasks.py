"""Track background tasks so they can be drained as a group."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, Set

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER


class TaskTracker:
    """Keep strong references to fire-and-forget tasks and surface their failures."""

    def __init__(self, label: str) -> None:
        self._label = label
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], reason: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=f"{self._label.lower()}-{reason}")
        self._tasks.add(task)

        def _discard_on_completion(fut: asyncio.Task) -> None:
            self._tasks.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"{self._label} task {reason!r} failed: {exc}",
                    error=True,
                    exc_info=exc,
                )

        task.add_done_callback(_discard_on_completion)
        LOGGER.verbose(self._label, f"Scheduled {reason}.")
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def cancel(self, reason: str) -> None:
        if not self._tasks:
            return
        LOGGER.verbose(
            self._label,
            f"Canceling {len(self._tasks)} pending task(s) ({reason}).",
        )
        for pending in tuple(self._tasks):
            pending.cancel()

    async def wait(self) -> None:
        """Wait for the tracked tasks to finish without cancelling them."""

        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    async def drain(self) -> None:
        if not self._tasks:
            return
        for pending in tuple(self._tasks):
            pending.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


__all__ = ["TaskTracker"]
