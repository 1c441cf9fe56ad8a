"""Text-to-speech through the OpenAI audio API, played back locally."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Optional, Protocol

from openai import AsyncOpenAI

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, SPEECH_LOG_LABEL
from voice_chat.config import TTS_MODEL, TTS_SAMPLE_RATE, TTS_VOICE
from voice_chat.core.tasks import TaskTracker


class _Player(Protocol):
    async def play(self, audio_bytes: bytes, sample_rate: Optional[int] = None) -> bool: ...

    async def stop(self) -> bool: ...


def _default_player() -> _Player:
    from voice_chat.audio import SpeechPlayer

    return SpeechPlayer(default_sample_rate=TTS_SAMPLE_RATE)


class OpenAISpeechSynthesizer:
    """
    SpeechSynthesizer implementation: fetch PCM audio for the text, then play it.

    ``on_done`` fires when the utterance ends on its own, including after a failed
    request or playback error; ``stop`` ends it silently.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: Optional[AsyncOpenAI] = None,
        player: Optional[_Player] = None,
        model: str = TTS_MODEL,
        voice: str = TTS_VOICE,
        sample_rate: int = TTS_SAMPLE_RATE,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._player = player
        self._model = model
        self._voice = voice
        self._sample_rate = sample_rate
        self._tasks = TaskTracker(SPEECH_LOG_LABEL)
        self._current: Optional[asyncio.Task] = None

    @property
    def supported(self) -> bool:
        return bool(self._api_key) or self._client is not None

    def speak(self, text: str, on_done: Optional[Callable[[], None]] = None) -> None:
        self.stop()
        self._current = self._tasks.spawn(self._speak(text, on_done), "speak")

    def stop(self) -> None:
        task = self._current
        self._current = None
        if task is None or task.done():
            return
        task.cancel()
        if self._player is not None:
            self._tasks.spawn(self._player.stop(), "stop-playback")

    async def aclose(self) -> None:
        self.stop()
        await self._tasks.drain()
        if self._client is not None:
            await self._client.close()

    async def synthesize(self, text: str) -> Optional[bytes]:
        """Return raw PCM16 audio for ``text``, or None when the request failed."""

        try:
            response = await self._ensure_client().audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=text,
                response_format="pcm",
            )
            return await response.aread()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Speech synthesis failed: {exc}", error=True)
            return None

    async def _speak(self, text: str, on_done: Optional[Callable[[], None]]) -> None:
        # Failed requests still report completion.
        completed = True
        audio = await self.synthesize(text)
        if audio:
            LOGGER.verbose(SPEECH_LOG_LABEL, f"Playing {len(audio)} bytes of synthesized audio.")
            try:
                completed = await self._ensure_player().play(audio, self._sample_rate)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.log(ERROR_LOG_LABEL, f"Speech playback failed: {exc}", error=True)
        if completed and on_done is not None:
            on_done()

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    def _ensure_player(self) -> _Player:
        if self._player is None:
            self._player = _default_player()
        return self._player


__all__ = ["OpenAISpeechSynthesizer"]
