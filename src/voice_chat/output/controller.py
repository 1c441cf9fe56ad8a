"""Output controller: speak one reply at a time and report natural completion once."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, SPEECH_LOG_LABEL
from voice_chat.speech.capabilities import SpeechSynthesizer

DoneCallback = Callable[[], None]
SPEECH_PREVIEW_CHARS = 50


class OutputController:
    """Wraps the speech synthesizer; the latest reply always wins."""

    def __init__(self, synthesizer: SpeechSynthesizer) -> None:
        self._synthesizer = synthesizer
        self._utterance_id = 0
        self._speaking = False
        self._on_done: Optional[DoneCallback] = None

    @property
    def is_supported(self) -> bool:
        return self._synthesizer.supported

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    def speak(self, text: str, on_done: Optional[DoneCallback] = None) -> bool:
        """Start speaking ``text``; returns False when nothing was started."""

        if not text or not text.strip():
            return False
        if not self.is_supported:
            LOGGER.log(SPEECH_LOG_LABEL, "Speech output is not available.")
            return False
        if self._speaking:
            self.stop()

        self._utterance_id += 1
        utterance_id = self._utterance_id
        self._speaking = True
        self._on_done = on_done
        preview = text[:SPEECH_PREVIEW_CHARS] + ("…" if len(text) > SPEECH_PREVIEW_CHARS else "")
        LOGGER.verbose(SPEECH_LOG_LABEL, f"Speaking #{utterance_id}: {preview!r}")
        try:
            self._synthesizer.speak(text, lambda: self._handle_done(utterance_id))
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Speech output failed to start: {exc}", error=True)
            self._speaking = False
            self._on_done = None
            return False
        return True

    def stop(self) -> bool:
        """Interrupt the current utterance; its completion callback is dropped."""

        if not self._speaking:
            return False
        LOGGER.verbose(SPEECH_LOG_LABEL, f"Stopping utterance #{self._utterance_id}.")
        self._speaking = False
        self._on_done = None
        # Invalidate the id so a completion already in flight is recognized as stale.
        self._utterance_id += 1
        try:
            self._synthesizer.stop()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Speech output failed to stop: {exc}", error=True)
        return True

    def _handle_done(self, utterance_id: int) -> None:
        if not self._speaking or utterance_id != self._utterance_id:
            LOGGER.verbose(SPEECH_LOG_LABEL, f"Ignoring completion of #{utterance_id}.")
            return
        self._speaking = False
        callback = self._on_done
        self._on_done = None
        LOGGER.verbose(SPEECH_LOG_LABEL, f"Utterance #{utterance_id} finished.")
        if callback is not None:
            callback()


__all__ = ["OutputController"]
