"""
Speech recognizer backed by the OpenAI Realtime transcription API.

Each recognition episode opens the microphone and a fresh transcription socket,
forwards audio until ``stop``/``abort`` is called, and reports transcription
deltas as interim fragments and completed items as final fragments.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Optional, Protocol

import websockets

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, SPEECH_LOG_LABEL
from voice_chat.core.exceptions import AudioDeviceError
from voice_chat.core.tasks import TaskTracker
from voice_chat.network.websocket_client import (
    TRANSCRIPTION_COMPLETED_EVENT,
    TRANSCRIPTION_DELTA_EVENT,
    TRANSCRIPTION_FAILED_EVENT,
    WebSocketClient,
)

from .capabilities import (
    ERROR_AUDIO_CAPTURE,
    ERROR_NETWORK,
    ERROR_NOT_ALLOWED,
    RecognitionFragment,
    RecognitionListener,
)


class _AudioSource(Protocol):
    def start_stream(self, loop: asyncio.AbstractEventLoop) -> None: ...

    def stop_stream(self) -> None: ...

    async def get_audio_chunk(self) -> bytes: ...


class _TranscriptionSocket(Protocol):
    async def connect(self) -> None: ...

    async def send_audio_chunk(self, audio_bytes: bytes) -> None: ...

    def receive_events(self) -> Any: ...

    async def close(self) -> None: ...


AudioSourceFactory = Callable[[], _AudioSource]
SocketFactory = Callable[[str], _TranscriptionSocket]


def _default_audio_source() -> _AudioSource:
    from voice_chat.audio import AudioCapture

    return AudioCapture()


class RealtimeSpeechRecognizer:
    """SpeechRecognizer implementation that streams the microphone to OpenAI."""

    def __init__(
        self,
        api_key: str,
        *,
        audio_source_factory: AudioSourceFactory = _default_audio_source,
        socket_factory: SocketFactory = WebSocketClient,
    ) -> None:
        self._api_key = api_key
        self._audio_source_factory = audio_source_factory
        self._socket_factory = socket_factory
        self._listener: Optional[RecognitionListener] = None
        self._tasks = TaskTracker(SPEECH_LOG_LABEL)
        self._episode = 0
        self._running = False
        self._partials: dict[str, str] = {}

    @property
    def supported(self) -> bool:
        return bool(self._api_key)

    @property
    def is_running(self) -> bool:
        return self._running

    def bind(self, listener: RecognitionListener) -> None:
        self._listener = listener

    def start(self) -> None:
        if self._running:
            raise RuntimeError("Recognition already in progress")
        self._episode += 1
        self._running = True
        self._partials.clear()
        self._tasks.spawn(self._run_episode(self._episode), f"episode-{self._episode}")

    def stop(self) -> None:
        """End the episode now; the listener sees ``handle_end`` before this returns."""

        if not self._halt():
            return
        if self._listener is not None:
            self._listener.handle_end()

    def abort(self) -> None:
        self._halt()

    async def aclose(self) -> None:
        self._halt()
        await self._tasks.drain()

    # ------------------------------------------------------------------
    # Episode lifecycle
    def _halt(self) -> bool:
        if not self._running:
            return False
        self._running = False
        # Bumping the episode makes any event still in flight stale.
        self._episode += 1
        self._tasks.cancel("recognition halted")
        return True

    async def _run_episode(self, episode: int) -> None:
        source = self._audio_source_factory()
        socket = self._socket_factory(self._api_key)
        try:
            try:
                source.start_stream(asyncio.get_running_loop())
            except AudioDeviceError as exc:
                code = ERROR_NOT_ALLOWED if exc.permission_denied else ERROR_AUDIO_CAPTURE
                self._fail(episode, code, str(exc))
                return

            try:
                await socket.connect()
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as exc:
                self._fail(episode, ERROR_NETWORK, str(exc))
                return

            if self._is_current(episode) and self._listener is not None:
                self._listener.handle_start()

            pump = asyncio.create_task(self._pump_audio(source, socket))
            try:
                await self._consume_events(episode, socket)
            except (OSError, websockets.exceptions.WebSocketException) as exc:
                self._fail(episode, ERROR_NETWORK, str(exc))
                return
            finally:
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)

            # The server closed the stream on its own.
            if self._is_current(episode):
                self._running = False
                if self._listener is not None:
                    self._listener.handle_end()
        finally:
            source.stop_stream()
            try:
                await socket.close()
            except Exception as exc:
                LOGGER.verbose(SPEECH_LOG_LABEL, f"Socket close failed: {exc}")

    async def _pump_audio(self, source: _AudioSource, socket: _TranscriptionSocket) -> None:
        while True:
            chunk = await source.get_audio_chunk()
            await socket.send_audio_chunk(chunk)

    async def _consume_events(self, episode: int, socket: _TranscriptionSocket) -> None:
        async for event in socket.receive_events():
            if not self._is_current(episode):
                return
            event_type = event.get("type")
            if event_type == TRANSCRIPTION_DELTA_EVENT:
                self._on_delta(event)
            elif event_type == TRANSCRIPTION_COMPLETED_EVENT:
                self._on_completed(event)
            elif event_type == TRANSCRIPTION_FAILED_EVENT:
                self._partials.pop(str(event.get("item_id", "")), None)
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"Transcription failed: {WebSocketClient.error_message(event)}",
                    error=True,
                )
            elif event_type == "error":
                self._fail(episode, ERROR_NETWORK, WebSocketClient.error_message(event))
                return

    def _on_delta(self, event: dict[str, Any]) -> None:
        item_id = str(event.get("item_id", ""))
        delta = event.get("delta")
        if not isinstance(delta, str) or not delta:
            return
        self._partials[item_id] = self._partials.get(item_id, "") + delta
        self._deliver([RecognitionFragment(self._pending_text(), is_final=False)])

    def _on_completed(self, event: dict[str, Any]) -> None:
        self._partials.pop(str(event.get("item_id", "")), None)
        transcript = event.get("transcript")
        fragments = [RecognitionFragment(str(transcript or ""), is_final=True)]
        pending = self._pending_text()
        if pending:
            fragments.append(RecognitionFragment(pending, is_final=False))
        self._deliver(fragments)

    def _pending_text(self) -> str:
        return " ".join(part.strip() for part in self._partials.values() if part.strip())

    def _deliver(self, fragments: list[RecognitionFragment]) -> None:
        if self._listener is not None:
            self._listener.handle_result(fragments)

    def _fail(self, episode: int, code: str, detail: str) -> None:
        if not self._is_current(episode):
            return
        self._running = False
        LOGGER.verbose(SPEECH_LOG_LABEL, f"Recognition episode {episode} failed ({code}).")
        if self._listener is not None:
            self._listener.handle_error(code, detail)

    def _is_current(self, episode: int) -> bool:
        return self._running and episode == self._episode


__all__ = ["RealtimeSpeechRecognizer"]
