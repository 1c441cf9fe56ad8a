"""Transcript accumulation for a single listening episode."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from voice_chat.cli.logging_utils import CAPTURE_LOG_LABEL, LOGGER
from voice_chat.speech.capabilities import RecognitionFragment

TRANSCRIPT_SNIPPET_LIMIT = 80


@dataclass(frozen=True)
class Utterance:
    """Read-only view of what has been heard so far."""

    text: str
    is_final: bool


class TranscriptBuffer:
    """Collects finalized fragments and tracks the latest interim fragment."""

    def __init__(self) -> None:
        self._segments: list[str] = []
        self._interim = ""
        self._last_was_final = False

    def reset(self) -> None:
        """Start a new episode; the only place finalized text is discarded."""

        self._segments.clear()
        self._interim = ""
        self._last_was_final = False

    def apply(self, fragments: Iterable[RecognitionFragment]) -> bool:
        """
        Fold a batch of recognition fragments into the buffer.

        Returns True when the newest fragment in the batch was final, which the
        capture controller uses to pick the shorter silence window.
        """

        interim_parts: list[str] = []
        saw_fragment = False
        for fragment in fragments:
            saw_fragment = True
            if fragment.is_final:
                cleaned = fragment.text.strip()
                if cleaned:
                    self._segments.append(cleaned)
                self._last_was_final = True
            else:
                interim_parts.append(fragment.text)
                self._last_was_final = False

        if saw_fragment:
            self._interim = "".join(interim_parts).strip()
            LOGGER.verbose(
                CAPTURE_LOG_LABEL,
                f"segments={len(self._segments)} interim={_shorten(self._interim)!r}",
            )
        return self._last_was_final

    def take_final_text(self) -> str:
        """Return the finalized text and clear the buffer so it is delivered only once."""

        text = " ".join(self._segments).strip()
        self.reset()
        return text

    @property
    def final_text(self) -> str:
        return " ".join(self._segments).strip()

    @property
    def interim_text(self) -> str:
        return self._interim

    def snapshot(self) -> Utterance:
        pieces = [part for part in (self.final_text, self._interim) if part]
        return Utterance(text=" ".join(pieces), is_final=not self._interim)


def _shorten(transcript: str) -> str:
    if len(transcript) <= TRANSCRIPT_SNIPPET_LIMIT:
        return transcript
    return transcript[:TRANSCRIPT_SNIPPET_LIMIT] + "…"


__all__ = ["TranscriptBuffer", "Utterance"]
