"""Speech capture: transcript buffering and episode control."""

from .buffer import TranscriptBuffer, Utterance
from .controller import CaptureController, CaptureTimings, is_transient_error

__all__ = [
    "CaptureController",
    "CaptureTimings",
    "TranscriptBuffer",
    "Utterance",
    "is_transient_error",
]
