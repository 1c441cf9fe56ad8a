"""Capture controller: one finalized utterance per listening episode."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional

from voice_chat.cli.logging_utils import CAPTURE_LOG_LABEL, ERROR_LOG_LABEL, LOGGER
from voice_chat.config import (
    CAPTURE_MAX_RETRY_DELAY_SECONDS,
    CAPTURE_RETRY_DELAY_SECONDS,
    FINAL_SILENCE_SECONDS,
    INTERIM_SILENCE_SECONDS,
    NO_SPEECH_TIMEOUT_SECONDS,
)
from voice_chat.core.exceptions import CaptureError
from voice_chat.core.timers import TimerSlots
from voice_chat.speech.capabilities import (
    ERROR_ABORTED,
    ERROR_AUDIO_CAPTURE,
    ERROR_NO_SPEECH,
    RecognitionFragment,
    SpeechRecognizer,
)

from .buffer import TranscriptBuffer, Utterance

NO_SPEECH_TIMER = "no-speech"
POST_FINAL_TIMER = "post-final"
POST_INTERIM_TIMER = "post-interim"
RETRY_TIMER = "retry-backoff"
_EPISODE_TIMERS = (NO_SPEECH_TIMER, POST_FINAL_TIMER, POST_INTERIM_TIMER)

TRANSIENT_ERROR_CODES = frozenset({ERROR_NO_SPEECH, ERROR_AUDIO_CAPTURE})

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[CaptureError], None]


@dataclass(slots=True)
class CaptureTimings:
    no_speech_timeout: float = NO_SPEECH_TIMEOUT_SECONDS
    final_silence: float = FINAL_SILENCE_SECONDS
    interim_silence: float = INTERIM_SILENCE_SECONDS
    retry_delay: float = CAPTURE_RETRY_DELAY_SECONDS
    max_retry_delay: float = CAPTURE_MAX_RETRY_DELAY_SECONDS


def is_transient_error(code: str) -> bool:
    """Return True for recognition failures that are worth retrying automatically."""

    return code in TRANSIENT_ERROR_CODES


class CaptureController:
    """
    Owns the speech recognizer and turns its event stream into utterances.

    Every episode ends with exactly one ``on_result`` call: the finalized text, or
    an empty string when nothing was finalized. Whether an empty result should
    trigger another episode is the caller's decision.
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        *,
        timings: Optional[CaptureTimings] = None,
    ) -> None:
        self._recognizer = recognizer
        self._timings = timings or CaptureTimings()
        self._buffer = TranscriptBuffer()
        self._timers = TimerSlots(CAPTURE_LOG_LABEL)
        self._listening = False
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._transient_failures = 0
        self._episode_count = 0
        recognizer.bind(self)

    # ------------------------------------------------------------------
    # Read-only state
    @property
    def is_supported(self) -> bool:
        return self._recognizer.supported

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_active(self) -> bool:
        """True while an episode runs or a retry is pending."""

        return self._listening or self._timers.is_armed(RETRY_TIMER)

    @property
    def transcript(self) -> Utterance:
        return self._buffer.snapshot()

    @property
    def episode_count(self) -> int:
        return self._episode_count

    # ------------------------------------------------------------------
    # Commands
    def start_listening(
        self,
        on_result: ResultCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        """Begin a new episode; returns False when the request was refused."""

        if not self.is_supported:
            LOGGER.log(CAPTURE_LOG_LABEL, "Speech recognition is not available.")
            return False
        if self.is_active:
            LOGGER.verbose(CAPTURE_LOG_LABEL, "Already listening; start request ignored.")
            return False

        self._on_result = on_result
        self._on_error = on_error
        self._transient_failures = 0
        self._begin_episode()
        return self.is_active

    def stop_listening(self) -> bool:
        """Cancel the episode without delivering a result. Safe to call when idle."""

        was_active = self.is_active
        self._timers.cancel_all()
        self._on_result = None
        self._on_error = None
        self._transient_failures = 0
        if self._listening:
            self._listening = False
            self._buffer.reset()
            LOGGER.verbose(CAPTURE_LOG_LABEL, "Stopping speech recognition.")
            self._stop_recognizer()
        return was_active

    def close(self) -> None:
        self.stop_listening()
        try:
            self._recognizer.abort()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Recognizer abort failed: {exc}", error=True)

    # ------------------------------------------------------------------
    # RecognitionListener
    def handle_start(self) -> None:
        LOGGER.verbose(CAPTURE_LOG_LABEL, f"Episode {self._episode_count} started.")

    def handle_result(self, fragments: Sequence[RecognitionFragment]) -> None:
        if not self._listening:
            LOGGER.verbose(CAPTURE_LOG_LABEL, "Recognition result ignored (not listening).")
            return

        self._timers.cancel(NO_SPEECH_TIMER)
        self._transient_failures = 0
        latest_final = self._buffer.apply(fragments)
        if latest_final:
            self._timers.cancel(POST_INTERIM_TIMER)
            self._timers.arm(
                POST_FINAL_TIMER,
                self._timings.final_silence,
                self._on_silence_timeout,
                POST_FINAL_TIMER,
            )
        else:
            self._timers.cancel(POST_FINAL_TIMER)
            self._timers.arm(
                POST_INTERIM_TIMER,
                self._timings.interim_silence,
                self._on_silence_timeout,
                POST_INTERIM_TIMER,
            )

    def handle_end(self) -> None:
        if not self._listening:
            return
        self._finish_episode("recognizer ended")

    def handle_error(self, code: str, detail: str = "") -> None:
        if code == ERROR_ABORTED:
            LOGGER.verbose(CAPTURE_LOG_LABEL, "Recognition aborted.")
            return
        if self._on_result is None:
            LOGGER.verbose(CAPTURE_LOG_LABEL, f"Late recognition error ignored ({code}).")
            return

        for name in _EPISODE_TIMERS:
            self._timers.cancel(name)
        self._listening = False
        self._buffer.reset()

        if is_transient_error(code):
            self._transient_failures += 1
            delay = min(
                self._timings.retry_delay * self._transient_failures,
                self._timings.max_retry_delay,
            )
            LOGGER.log(
                CAPTURE_LOG_LABEL,
                f"Transient recognition error ({code}); retrying in {delay:.1f}s "
                f"(attempt {self._transient_failures}).",
            )
            self._timers.arm(RETRY_TIMER, delay, self._retry)
            return

        on_error = self._on_error
        self._on_result = None
        self._on_error = None
        self._transient_failures = 0
        error = CaptureError(code, transient=False, detail=detail)
        LOGGER.log(ERROR_LOG_LABEL, f"Speech recognition failed: {error}", error=True)
        if on_error is not None:
            on_error(error)

    # ------------------------------------------------------------------
    # Internal helpers
    def _begin_episode(self) -> None:
        self._buffer.reset()
        self._listening = True
        self._episode_count += 1
        self._timers.arm(
            NO_SPEECH_TIMER,
            self._timings.no_speech_timeout,
            self._on_silence_timeout,
            NO_SPEECH_TIMER,
        )
        LOGGER.verbose(CAPTURE_LOG_LABEL, f"Starting episode {self._episode_count}.")
        try:
            self._recognizer.start()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Unable to start speech recognition: {exc}", error=True)
            self.handle_error(ERROR_AUDIO_CAPTURE, str(exc))

    def _retry(self) -> None:
        if self._on_result is None or self._listening:
            return
        self._begin_episode()

    def _on_silence_timeout(self, timer_name: str) -> None:
        if not self._listening:
            return
        LOGGER.verbose(CAPTURE_LOG_LABEL, f"Silence window elapsed ({timer_name}); stopping.")
        self._stop_recognizer()
        # The recognizer may have ended the episode synchronously while stopping.
        if self._listening:
            self._finish_episode(timer_name)

    def _finish_episode(self, reason: str) -> None:
        for name in _EPISODE_TIMERS:
            self._timers.cancel(name)
        self._listening = False
        text = self._buffer.take_final_text()
        callback = self._on_result
        self._on_result = None
        self._on_error = None
        LOGGER.verbose(
            CAPTURE_LOG_LABEL,
            f"Episode {self._episode_count} finished ({reason}); heard={bool(text)}.",
        )
        if callback is not None:
            callback(text)

    def _stop_recognizer(self) -> None:
        try:
            self._recognizer.stop()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Recognizer stop failed: {exc}", error=True)


__all__ = [
    "CaptureController",
    "CaptureTimings",
    "TRANSIENT_ERROR_CODES",
    "is_transient_error",
]
