"""Render orchestrator events to the terminal."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

from voice_chat.cli.logging_utils import (
    ASSISTANT_LOG_LABEL,
    ERROR_LOG_LABEL,
    LOGGER,
    USER_LOG_LABEL,
    VOICE_LOG_LABEL,
)
from voice_chat.conversation.models import ChatMessage, OrchestratorState, Source
from voice_chat.conversation.orchestrator import (
    EVENT_CAPTURE_ERROR,
    EVENT_LOADING,
    EVENT_MESSAGE,
    EVENT_RESET,
    EVENT_STATE,
)
from voice_chat.core.exceptions import CaptureError
from voice_chat.speech.capabilities import ERROR_NOT_ALLOWED, ERROR_SERVICE_NOT_ALLOWED

SOURCES_LOG_LABEL = "SOURCES"
MAX_EXCERPT_CHARS = 120

_STATE_HINTS = {
    OrchestratorState.LISTENING: "Listening...",
    OrchestratorState.AWAITING_REPLY: "Thinking...",
    OrchestratorState.SPEAKING: "Speaking...",
}


def format_source(index: int, source: Source) -> str:
    excerpt = " ".join(source.excerpt.split())
    if len(excerpt) > MAX_EXCERPT_CHARS:
        excerpt = excerpt[: MAX_EXCERPT_CHARS - 1] + "…"
    return f"{index}. {source.title}" + (f": {excerpt}" if excerpt else "")


def describe_capture_error(error: CaptureError) -> str:
    if error.code in (ERROR_NOT_ALLOWED, ERROR_SERVICE_NOT_ALLOWED):
        return "Microphone access was denied. Check your system permissions."
    detail = f" ({error.detail})" if error.detail else ""
    return f"Speech recognition stopped: {error.code}{detail}"


class ConsoleRenderer:
    """Orchestrator listener that prints the conversation as it happens."""

    def __init__(
        self,
        *,
        sources_provider: Optional[Callable[[], tuple[Source, ...]]] = None,
        show_sources: bool = True,
    ) -> None:
        self._sources_provider = sources_provider
        self._show_sources = show_sources

    def __call__(self, event: str, payload: Any) -> None:
        if event == EVENT_MESSAGE:
            self._render_message(payload)
        elif event == EVENT_STATE:
            hint = _STATE_HINTS.get(payload)
            if hint:
                LOGGER.log(VOICE_LOG_LABEL, hint)
        elif event == EVENT_LOADING and payload:
            LOGGER.verbose(VOICE_LOG_LABEL, "Waiting for reply...")
        elif event == EVENT_CAPTURE_ERROR:
            LOGGER.log(ERROR_LOG_LABEL, describe_capture_error(payload), error=True)
        elif event == EVENT_RESET:
            LOGGER.log(VOICE_LOG_LABEL, "Conversation cleared.")

    def render_sources(self, sources: tuple[Source, ...]) -> None:
        if not self._show_sources or not sources:
            return
        for index, source in enumerate(sources, start=1):
            LOGGER.log(SOURCES_LOG_LABEL, format_source(index, source))

    def _render_message(self, message: ChatMessage) -> None:
        if message.role == "user":
            suffix = f" [{message.attachment.name}]" if message.attachment else ""
            LOGGER.log(USER_LOG_LABEL, message.text + suffix)
        else:
            LOGGER.log(ASSISTANT_LOG_LABEL, message.text)
            if self._sources_provider is not None:
                self.render_sources(self._sources_provider())


__all__ = ["ConsoleRenderer", "describe_capture_error", "format_source"]
