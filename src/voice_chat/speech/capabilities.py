"""Contracts for the platform speech capabilities consumed by the controllers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

# Recognition error codes emitted through ``RecognitionListener.handle_error``.
ERROR_NO_SPEECH = "no-speech"
ERROR_AUDIO_CAPTURE = "audio-capture"
ERROR_ABORTED = "aborted"
ERROR_NOT_ALLOWED = "not-allowed"
ERROR_SERVICE_NOT_ALLOWED = "service-not-allowed"
ERROR_NETWORK = "network"
ERROR_LANGUAGE_NOT_SUPPORTED = "language-not-supported"


@dataclass(frozen=True)
class RecognitionFragment:
    """One piece of recognized speech; interim fragments may be revised later."""

    text: str
    is_final: bool


class RecognitionListener(Protocol):
    def handle_start(self) -> None: ...

    def handle_result(self, fragments: Sequence[RecognitionFragment]) -> None: ...

    def handle_end(self) -> None: ...

    def handle_error(self, code: str, detail: str = "") -> None: ...


class SpeechRecognizer(Protocol):
    """Speech-to-text capability; one recognition episode at a time."""

    @property
    def supported(self) -> bool: ...

    def bind(self, listener: RecognitionListener) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class SpeechSynthesizer(Protocol):
    """Text-to-speech capability; ``on_done`` fires only on natural completion."""

    @property
    def supported(self) -> bool: ...

    def speak(self, text: str, on_done: Optional[Callable[[], None]] = None) -> None: ...

    def stop(self) -> None: ...


__all__ = [
    "ERROR_ABORTED",
    "ERROR_AUDIO_CAPTURE",
    "ERROR_LANGUAGE_NOT_SUPPORTED",
    "ERROR_NETWORK",
    "ERROR_NOT_ALLOWED",
    "ERROR_NO_SPEECH",
    "ERROR_SERVICE_NOT_ALLOWED",
    "RecognitionFragment",
    "RecognitionListener",
    "SpeechRecognizer",
    "SpeechSynthesizer",
]
