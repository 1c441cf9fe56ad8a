"""Conversation orchestrator: the listen -> reply -> speak -> listen loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, Optional

from voice_chat.capture.buffer import Utterance
from voice_chat.capture.controller import CaptureController
from voice_chat.cli.logging_utils import (
    ERROR_LOG_LABEL,
    LOGGER,
    VOICE_LOG_LABEL,
    log_state_transition,
)
from voice_chat.config import (
    ACTIVATION_DELAY_SECONDS,
    AUTO_SPEAK,
    AUTO_SPEAK_DELAY_SECONDS,
    CHAT_MODE,
    CHAT_SESSION_ID,
    EMPTY_RESTART_DELAY_SECONDS,
    ERROR_RESTART_DELAY_SECONDS,
    NO_REPLY_RESTART_DELAY_SECONDS,
    POST_SPEECH_DELAY_SECONDS,
    normalize_chat_mode,
)
from voice_chat.core.exceptions import CaptureError
from voice_chat.core.tasks import TaskTracker
from voice_chat.core.timers import TimerSlots
from voice_chat.output.controller import OutputController

from .models import (
    Attachment,
    ChatMessage,
    ConversationLog,
    ConversationSession,
    OrchestratorState,
    Source,
    Turn,
)
from .turns import TurnExecutor

CONTINUATION_TIMER = "continuation"
AUTO_SPEAK_TIMER = "auto-speak"

# Events delivered to listeners registered with ``add_listener``.
EVENT_STATE = "state"
EVENT_MESSAGE = "message"
EVENT_VOICE_MODE = "voice_mode"
EVENT_LOADING = "loading"
EVENT_CAPTURE_ERROR = "capture_error"
EVENT_RESET = "reset"

OrchestratorListener = Callable[[str, Any], None]


@dataclass(slots=True)
class VoiceLoopTimings:
    activation_delay: float = ACTIVATION_DELAY_SECONDS
    empty_restart_delay: float = EMPTY_RESTART_DELAY_SECONDS
    post_speech_delay: float = POST_SPEECH_DELAY_SECONDS
    no_reply_restart_delay: float = NO_REPLY_RESTART_DELAY_SECONDS
    error_restart_delay: float = ERROR_RESTART_DELAY_SECONDS
    auto_speak_delay: float = AUTO_SPEAK_DELAY_SECONDS


class ConversationOrchestrator:
    """
    Drives voice mode as an explicit state machine.

    Each activation gets a new generation number. Every timer, capability callback
    and transport continuation carries the generation it was scheduled under and
    becomes a no-op once that generation is no longer the active one, so a
    deactivated loop can never be resurrected by a late callback.
    """

    def __init__(
        self,
        capture: CaptureController,
        output: OutputController,
        executor: TurnExecutor,
        *,
        mode: str = CHAT_MODE,
        auto_speak: bool = AUTO_SPEAK,
        session_id: Optional[str] = CHAT_SESSION_ID or None,
        timings: Optional[VoiceLoopTimings] = None,
    ) -> None:
        self._capture = capture
        self._output = output
        self._executor = executor
        self._timings = timings or VoiceLoopTimings()
        self._timers = TimerSlots(VOICE_LOG_LABEL)
        self._tasks = TaskTracker(VOICE_LOG_LABEL)
        self._log = ConversationLog(on_append=self._announce_message)
        self._listeners: list[OrchestratorListener] = []
        self._state = OrchestratorState.IDLE
        self._generation = 0
        self._active_generation: Optional[int] = None
        self._fixed_session_id = session_id
        self._session: Optional[ConversationSession] = None
        self._mode = normalize_chat_mode(mode)
        self._pending_turns = 0
        self._manual_turn_pending = False
        self._dictation: Optional[asyncio.Future[str]] = None
        self._capture_error: Optional[CaptureError] = None
        self.auto_speak = auto_speak

    # ------------------------------------------------------------------
    # Observable state
    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def voice_mode_active(self) -> bool:
        return self._active_generation is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._log.messages

    @property
    def sources(self) -> tuple[Source, ...]:
        return self._log.sources

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_loading(self) -> bool:
        return self._pending_turns > 0

    @property
    def capture_error(self) -> Optional[CaptureError]:
        return self._capture_error

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def is_listening(self) -> bool:
        return self._capture.is_listening

    @property
    def is_speaking(self) -> bool:
        return self._output.is_speaking

    @property
    def transcript(self) -> Utterance:
        return self._capture.transcript

    @property
    def voice_mode_supported(self) -> bool:
        return self._capture.is_supported and self._output.is_supported

    def add_listener(self, listener: OrchestratorListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Voice mode lifecycle
    def activate(self) -> bool:
        """Turn voice mode on; returns False when activation was refused."""

        if self.voice_mode_active:
            return False
        if self._manual_turn_pending:
            LOGGER.log(VOICE_LOG_LABEL, "A message is still being sent; try again shortly.")
            return False
        if not self.voice_mode_supported:
            LOGGER.log(VOICE_LOG_LABEL, "Voice mode needs both speech recognition and output.")
            return False

        self._stop_capture()
        self._timers.cancel(AUTO_SPEAK_TIMER)
        self._generation += 1
        generation = self._generation
        self._active_generation = generation
        self._capture_error = None
        self._ensure_session()
        LOGGER.log(VOICE_LOG_LABEL, f"Voice mode on (generation {generation}).")
        self._set_state(OrchestratorState.LISTENING, "voice mode activated")
        self._emit(EVENT_VOICE_MODE, True)
        self._schedule(generation, self._timings.activation_delay, self._listen, generation)
        return True

    def deactivate(self) -> bool:
        """Turn voice mode off; in-flight work finishes but its continuations are dropped."""

        if not self.voice_mode_active:
            return False
        self._active_generation = None
        self._timers.cancel(CONTINUATION_TIMER)
        self._stop_capture()
        self._output.stop()
        LOGGER.log(VOICE_LOG_LABEL, "Voice mode off.")
        self._set_state(OrchestratorState.IDLE, "voice mode deactivated")
        self._emit(EVENT_VOICE_MODE, False)
        return True

    def toggle_voice_mode(self) -> bool:
        """Flip voice mode and return whether it is now active."""

        if self.voice_mode_active:
            self.deactivate()
        else:
            self.activate()
        return self.voice_mode_active

    # ------------------------------------------------------------------
    # Manual operations
    async def send_message(
        self, text: str, attachment: Optional[Attachment] = None
    ) -> Optional[Turn]:
        """Send a typed message; the reply is spoken when auto speak is on."""

        if not text.strip() and attachment is None:
            return None
        if self.voice_mode_active:
            LOGGER.log(VOICE_LOG_LABEL, "Typed messages are unavailable while voice mode is on.")
            return None
        if self.is_loading:
            LOGGER.log(VOICE_LOG_LABEL, "Still waiting for the previous reply.")
            return None

        self._log.add_user_message(text, attachment)
        self._output.stop()
        self._manual_turn_pending = True
        self._begin_turn()
        try:
            turn = await self._executor.run_turn(
                text, self._ensure_session().id, self._mode, attachment
            )
        finally:
            self._manual_turn_pending = False
            self._end_turn()

        self._log.apply_turn(turn)
        if self.auto_speak and not turn.failed and turn.reply.strip():
            self._timers.arm(
                AUTO_SPEAK_TIMER,
                self._timings.auto_speak_delay,
                self._output.speak,
                turn.reply,
            )
        return turn

    async def dictate(self) -> str:
        """Capture a single utterance outside voice mode; returns "" when nothing was heard."""

        if self.voice_mode_active:
            LOGGER.log(VOICE_LOG_LABEL, "Dictation is unavailable while voice mode is on.")
            return ""

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        def _on_result(text: str) -> None:
            if not future.done():
                future.set_result(text)

        def _on_error(error: CaptureError) -> None:
            self._capture_error = error
            self._emit(EVENT_CAPTURE_ERROR, error)
            if not future.done():
                future.set_result("")

        if not self._capture.start_listening(_on_result, _on_error):
            return ""
        self._dictation = future
        try:
            return await future
        except asyncio.CancelledError:
            self._capture.stop_listening()
            raise
        finally:
            if self._dictation is future:
                self._dictation = None

    def toggle_speech(self, text: str) -> bool:
        """Stop speaking if something is playing, otherwise read ``text`` aloud."""

        if self.voice_mode_active:
            LOGGER.log(VOICE_LOG_LABEL, "Replies are read aloud automatically in voice mode.")
            return False
        if self._output.is_speaking:
            self._output.stop()
            return False
        return self._output.speak(text)

    def set_mode(self, mode: str) -> str:
        self._mode = normalize_chat_mode(mode, self._mode)
        return self._mode

    async def reset(self) -> bool:
        """Clear the conversation locally and on the server; refused while a reply is pending."""

        if self.is_loading:
            LOGGER.log(VOICE_LOG_LABEL, "Still waiting for a reply; reset ignored.")
            return False

        session_id = self.session_id or self._fixed_session_id
        self.deactivate()
        self._timers.cancel_all()
        self._stop_capture()
        self._output.stop()
        self._log.clear()
        self._capture_error = None
        self._session = None
        LOGGER.log(VOICE_LOG_LABEL, "Conversation reset.")
        self._emit(EVENT_RESET, None)
        if session_id:
            await self._executor.reset(session_id, self._mode)
        return True

    async def wait_for_turns(self) -> None:
        """Wait until every in-flight voice turn has resolved."""

        await self._tasks.wait()

    async def shutdown(self) -> None:
        self.deactivate()
        self._timers.cancel_all()
        await self._tasks.drain()
        self._stop_capture()
        self._capture.close()
        self._output.stop()

    # ------------------------------------------------------------------
    # State machine
    def _is_current(self, generation: int) -> bool:
        return self._active_generation is not None and generation == self._active_generation

    def _schedule(
        self, generation: int, delay: float, action: Callable[..., None], *args: Any
    ) -> None:
        self._timers.arm(CONTINUATION_TIMER, delay, self._run_if_current, generation, action, args)

    def _run_if_current(
        self, generation: int, action: Callable[..., None], args: tuple[Any, ...]
    ) -> None:
        if not self._is_current(generation):
            LOGGER.verbose(
                VOICE_LOG_LABEL, f"Discarded stale continuation (generation {generation})."
            )
            return
        action(*args)

    def _listen(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        started = self._capture.start_listening(
            partial(self._on_capture_result, generation),
            partial(self._on_capture_error, generation),
        )
        if started:
            self._set_state(OrchestratorState.LISTENING, "capture started")
            return
        if self._capture.is_active:
            return
        LOGGER.log(ERROR_LOG_LABEL, "Speech recognition could not be started.", error=True)
        self._set_state(OrchestratorState.IDLE, "capture unavailable")

    def _on_capture_result(self, generation: int, text: str) -> None:
        if not self._is_current(generation):
            LOGGER.verbose(VOICE_LOG_LABEL, "Discarded capture result from an old generation.")
            return

        if not text.strip():
            LOGGER.verbose(VOICE_LOG_LABEL, "Nothing heard; listening again shortly.")
            self._schedule(generation, self._timings.empty_restart_delay, self._listen, generation)
            return

        LOGGER.verbose(VOICE_LOG_LABEL, f"Heard: {text!r}")
        self._log.add_user_message(text)
        self._output.stop()
        self._set_state(OrchestratorState.AWAITING_REPLY, "utterance captured")
        self._tasks.spawn(self._run_voice_turn(generation, text), "voice-turn")

    def _on_capture_error(self, generation: int, error: CaptureError) -> None:
        if not self._is_current(generation):
            return
        self._capture_error = error
        self._set_state(OrchestratorState.IDLE, f"capture failed ({error.code})")
        self._emit(EVENT_CAPTURE_ERROR, error)

    async def _run_voice_turn(self, generation: int, text: str) -> None:
        session_id = self._ensure_session().id
        self._begin_turn()
        try:
            turn = await self._executor.run_turn(text, session_id, self._mode)
        finally:
            self._end_turn()
        if not self._is_current(generation):
            LOGGER.verbose(VOICE_LOG_LABEL, "Voice mode ended while waiting; reply discarded.")
            return

        self._log.apply_turn(turn)
        if turn.failed:
            self._set_state(OrchestratorState.LISTENING, "reply failed")
            self._schedule(generation, self._timings.error_restart_delay, self._listen, generation)
            return

        if turn.reply.strip():
            self._set_state(OrchestratorState.SPEAKING, "reply received")
            if self._output.speak(turn.reply, partial(self._on_speech_done, generation)):
                return

        self._set_state(OrchestratorState.LISTENING, "no reply to speak")
        self._schedule(generation, self._timings.no_reply_restart_delay, self._listen, generation)

    def _on_speech_done(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._set_state(OrchestratorState.LISTENING, "reply spoken")
        self._schedule(generation, self._timings.post_speech_delay, self._listen, generation)

    # ------------------------------------------------------------------
    # Internal helpers
    def _ensure_session(self) -> ConversationSession:
        if self._session is None:
            self._session = ConversationSession(self._fixed_session_id)
            LOGGER.verbose(VOICE_LOG_LABEL, f"Using {self._session!r}.")
        return self._session

    def _set_state(self, new_state: OrchestratorState, reason: str) -> None:
        previous = self._state
        if previous == new_state:
            return
        self._state = new_state
        log_state_transition(previous, new_state, reason)
        self._emit(EVENT_STATE, new_state)

    def _stop_capture(self) -> None:
        self._capture.stop_listening()
        # A waiting dictation resolves empty once capture stops.
        dictation = self._dictation
        self._dictation = None
        if dictation is not None and not dictation.done():
            dictation.set_result("")

    def _begin_turn(self) -> None:
        self._pending_turns += 1
        if self._pending_turns == 1:
            self._emit(EVENT_LOADING, True)

    def _end_turn(self) -> None:
        self._pending_turns -= 1
        if self._pending_turns == 0:
            self._emit(EVENT_LOADING, False)

    def _announce_message(self, message: ChatMessage) -> None:
        self._emit(EVENT_MESSAGE, message)

    def _emit(self, event: str, payload: Any) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(event, payload)
            except Exception as exc:
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"Listener failed on {event!r}: {exc}",
                    error=True,
                    exc_info=exc,
                )


__all__ = [
    "ConversationOrchestrator",
    "EVENT_CAPTURE_ERROR",
    "EVENT_LOADING",
    "EVENT_MESSAGE",
    "EVENT_RESET",
    "EVENT_STATE",
    "EVENT_VOICE_MODE",
    "OrchestratorListener",
    "VoiceLoopTimings",
]
