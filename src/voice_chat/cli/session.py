"""Wire the chat transport, speech adapters and orchestrator for one CLI run."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Optional

from voice_chat.capture.controller import CaptureController
from voice_chat.cli.logging_utils import LOGGER, VOICE_LOG_LABEL
from voice_chat.config import AUTO_SPEAK, CHAT_MODE, CHAT_SESSION_ID, require_openai_api_key
from voice_chat.conversation.orchestrator import ConversationOrchestrator
from voice_chat.conversation.turns import ChatTransport, TurnExecutor
from voice_chat.network.chat_client import ChatClient
from voice_chat.output.controller import OutputController
from voice_chat.speech.capabilities import SpeechRecognizer, SpeechSynthesizer
from voice_chat.speech.realtime import RealtimeSpeechRecognizer
from voice_chat.speech.synthesis import OpenAISpeechSynthesizer


@dataclass(slots=True)
class SessionOptions:
    mode: str = CHAT_MODE
    auto_speak: bool = AUTO_SPEAK
    session_id: Optional[str] = field(default_factory=lambda: CHAT_SESSION_ID or None)


class VoiceChatSession:
    """
    Async context manager owning every long-lived component of a run.

    Components that are not injected are built on entry: the HTTP chat client,
    the realtime recognizer and the OpenAI synthesizer. Everything is torn down
    on exit, injected components included.
    """

    def __init__(
        self,
        options: Optional[SessionOptions] = None,
        *,
        transport: Optional[ChatTransport] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
    ) -> None:
        self.options = options or SessionOptions()
        self._transport = transport
        self._recognizer = recognizer
        self._synthesizer = synthesizer
        self._orchestrator: Optional[ConversationOrchestrator] = None

    @property
    def orchestrator(self) -> ConversationOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("Session has not been started")
        return self._orchestrator

    async def __aenter__(self) -> "VoiceChatSession":
        if self._recognizer is None or self._synthesizer is None:
            api_key = require_openai_api_key()
            if self._recognizer is None:
                self._recognizer = RealtimeSpeechRecognizer(api_key)
            if self._synthesizer is None:
                self._synthesizer = OpenAISpeechSynthesizer(api_key)
        if self._transport is None:
            self._transport = ChatClient()

        self._orchestrator = ConversationOrchestrator(
            CaptureController(self._recognizer),
            OutputController(self._synthesizer),
            TurnExecutor(self._transport),
            mode=self.options.mode,
            auto_speak=self.options.auto_speak,
            session_id=self.options.session_id,
        )
        LOGGER.verbose(
            VOICE_LOG_LABEL,
            f"Session ready (mode={self.options.mode}, auto_speak={self.options.auto_speak}).",
        )
        return self

    async def __aexit__(self, *_exc: object) -> None:
        if self._orchestrator is not None:
            await self._orchestrator.shutdown()
            self._orchestrator = None
        for component in (self._recognizer, self._synthesizer, self._transport):
            closer = getattr(component, "aclose", None) or getattr(component, "close", None)
            if closer is None:
                continue
            result = closer()
            if inspect.isawaitable(result):
                await result


__all__ = ["SessionOptions", "VoiceChatSession"]
