"""
Realtime transcription socket.
Streams microphone audio to the OpenAI Realtime API and yields its transcription events.
"""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import AsyncIterator, Mapping
from typing import Any, Optional, Protocol, cast

import websockets

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, ws_log_label
from voice_chat.config import OPENAI_REALTIME_ENDPOINT, SESSION_CONFIG, websocket_headers

TRANSCRIPTION_DELTA_EVENT = "conversation.item.input_audio_transcription.delta"
TRANSCRIPTION_COMPLETED_EVENT = "conversation.item.input_audio_transcription.completed"
TRANSCRIPTION_FAILED_EVENT = "conversation.item.input_audio_transcription.failed"
SESSION_CREATED_EVENT = "transcription_session.created"

_TRANSCRIPT_EVENT_TYPES = {TRANSCRIPTION_DELTA_EVENT, TRANSCRIPTION_COMPLETED_EVENT}
_MAX_SUMMARY_KEYS = 5
_SESSION_CREATED_TIMEOUT = 10.0


class _WebSocketProtocol(Protocol):
    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def send(self, payload: str) -> None: ...

    async def close(self) -> None: ...


class WebSocketClient:
    """One transcription session over a single websocket connection."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = OPENAI_REALTIME_ENDPOINT,
        session_config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint
        self._session_config = dict(session_config or SESSION_CONFIG)
        self.websocket: Optional[_WebSocketProtocol] = None
        self.connected = False

    async def connect(self) -> None:
        """Open the socket, wait for the session handshake, then push our session config."""

        LOGGER.verbose(ws_log_label(), f"Connecting to {self._endpoint}")
        try:
            self.websocket = cast(
                _WebSocketProtocol,
                await websockets.connect(
                    self._endpoint, additional_headers=websocket_headers(self._api_key)
                ),
            )
            self.connected = True
            try:
                await asyncio.wait_for(
                    self.wait_for_session_created(), timeout=_SESSION_CREATED_TIMEOUT
                )
            except asyncio.TimeoutError:
                LOGGER.log(
                    ws_log_label(),
                    f"No session.created event after {_SESSION_CREATED_TIMEOUT:.0f}s; "
                    "sending session.update anyway",
                )
            await self.send_session_config()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Error connecting to OpenAI: {exc}", error=True)
            await self.close()
            raise

    async def wait_for_session_created(self) -> dict[str, Any]:
        websocket = self._require_websocket()
        async for message in websocket:
            event = self._decode(message)
            if event is None:
                continue
            event_type = event.get("type")
            if event_type == SESSION_CREATED_EVENT:
                LOGGER.verbose(ws_log_label("←"), "Transcription session created")
                return event
            if event_type == "error":
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"Server error: {self.error_message(event)}",
                    error=True,
                )
        raise ConnectionError("Connection closed before the transcription session was created")

    async def send_session_config(self) -> None:
        session_update = {"type": "transcription_session.update", "session": self._session_config}
        await self._require_websocket().send(json.dumps(session_update))
        self._log_ws_payload("→", session_update)

    async def send_audio_chunk(self, audio_bytes: bytes) -> None:
        """Append raw PCM16 audio to the server-side input buffer."""

        message = {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(audio_bytes).decode("utf-8"),
        }
        await self._require_websocket().send(json.dumps(message))

    async def receive_events(self) -> AsyncIterator[dict[str, Any]]:
        """
        Yield parsed server events until the connection closes.

        Yields:
            dict: One decoded JSON event.
        """

        websocket = self._require_websocket()
        try:
            async for message in websocket:
                event = self._decode(message)
                if event is not None:
                    yield event
        except websockets.exceptions.ConnectionClosedOK:
            LOGGER.verbose(ws_log_label(), "WebSocket connection closed")
        finally:
            self.connected = False

    async def close(self) -> None:
        websocket = self.websocket
        self.websocket = None
        self.connected = False
        if websocket is not None:
            await websocket.close()
            LOGGER.verbose(ws_log_label(), "WebSocket connection closed")

    @staticmethod
    def error_message(event: Mapping[str, Any]) -> str:
        error = event.get("error")
        if isinstance(error, Mapping):
            return str(error.get("message") or "Unknown error")
        return str(error or "Unknown error")

    # ------------------------------------------------------------------
    # Internal helpers
    def _require_websocket(self) -> _WebSocketProtocol:
        if self.websocket is None:
            raise ConnectionError("WebSocket not connected")
        return self.websocket

    def _decode(self, message: str | bytes) -> Optional[dict[str, Any]]:
        raw = message.decode("utf-8", errors="replace") if isinstance(message, bytes) else message
        try:
            event = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.log(
                ERROR_LOG_LABEL,
                f"Malformed realtime payload at pos {exc.pos}: {raw[:120]!r}",
                error=True,
            )
            return None
        if not isinstance(event, dict):
            return None
        self._log_ws_payload("←", event)
        return event

    def _log_ws_payload(self, direction: str, payload: Mapping[str, Any]) -> None:
        payload_type = payload.get("type")
        # Transcript events carry raw user speech; keep them out of the log.
        if payload_type in _TRANSCRIPT_EVENT_TYPES:
            return
        keys = sorted(key for key in payload if key != "type")
        shown = ", ".join(keys[:_MAX_SUMMARY_KEYS]) or "<none>"
        if len(keys) > _MAX_SUMMARY_KEYS:
            shown += ",…"
        LOGGER.verbose(ws_log_label(direction), f"type={payload_type} keys={shown}")


__all__ = [
    "SESSION_CREATED_EVENT",
    "TRANSCRIPTION_COMPLETED_EVENT",
    "TRANSCRIPTION_DELTA_EVENT",
    "TRANSCRIPTION_FAILED_EVENT",
    "WebSocketClient",
]
