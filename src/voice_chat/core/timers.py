"""Named, cancelable timers scheduled on the running event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER


class TimerSlots:
    """
    Keep at most one pending ``call_later`` handle per purpose.

    Arming a slot cancels whatever was pending in it. Callbacks that raise are
    logged instead of surfacing through the loop's default exception handler.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def arm(self, name: str, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        self.cancel(name)
        loop = asyncio.get_running_loop()
        self._handles[name] = loop.call_later(
            max(delay, 0.0), self._fire, name, callback, args
        )
        LOGGER.verbose(self._label, f"Timer {name!r} armed ({delay:.2f}s)")

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for name in tuple(self._handles):
            self.cancel(name)

    def is_armed(self, name: str) -> bool:
        return name in self._handles

    @property
    def armed(self) -> tuple[str, ...]:
        return tuple(self._handles)

    def _fire(self, name: str, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self._handles.pop(name, None)
        LOGGER.verbose(self._label, f"Timer {name!r} fired")
        try:
            callback(*args)
        except Exception as exc:
            LOGGER.log(
                ERROR_LOG_LABEL,
                f"{self._label} timer {name!r} callback failed: {exc}",
                error=True,
                exc_info=exc,
            )


__all__ = ["TimerSlots"]
