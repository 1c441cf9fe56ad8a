"""Speech capability contracts and their OpenAI-backed implementations."""

from .capabilities import (
    RecognitionFragment,
    RecognitionListener,
    SpeechRecognizer,
    SpeechSynthesizer,
)
from .realtime import RealtimeSpeechRecognizer
from .synthesis import OpenAISpeechSynthesizer

__all__ = [
    "OpenAISpeechSynthesizer",
    "RealtimeSpeechRecognizer",
    "RecognitionFragment",
    "RecognitionListener",
    "SpeechRecognizer",
    "SpeechSynthesizer",
]
