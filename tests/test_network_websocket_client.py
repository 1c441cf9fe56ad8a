import asyncio
import base64
import json
from typing import Any

import pytest

from voice_chat.network import websocket_client as websocket_module
from voice_chat.network.websocket_client import (
    SESSION_CREATED_EVENT,
    TRANSCRIPTION_COMPLETED_EVENT,
    WebSocketClient,
)


class DummyWebSocket:
    def __init__(self, incoming: list[str | bytes] | None = None):
        self._incoming: asyncio.Queue[str | bytes] = asyncio.Queue()
        for message in incoming or []:
            self._incoming.put_nowait(message)
        self.sent: list[str] = []
        self.closed = False

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> str | bytes:
        if self._incoming.empty():
            raise StopAsyncIteration
        return await self._incoming.get()

    async def send(self, payload: str) -> None:
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def patched_connect(monkeypatch):
    calls: list[dict[str, Any]] = []

    def install(socket: DummyWebSocket) -> list[dict[str, Any]]:
        async def fake_connect(endpoint, **kwargs):
            calls.append({"endpoint": endpoint, **kwargs})
            return socket

        monkeypatch.setattr(websocket_module.websockets, "connect", fake_connect)
        return calls

    return install


@pytest.mark.asyncio
async def test_connect_waits_for_session_and_sends_config(patched_connect):
    socket = DummyWebSocket([json.dumps({"type": SESSION_CREATED_EVENT})])
    calls = patched_connect(socket)
    client = WebSocketClient(
        "sk-test", endpoint="wss://example.test/realtime", session_config={"model": "m"}
    )

    await client.connect()

    assert client.connected is True
    assert calls[0]["endpoint"] == "wss://example.test/realtime"
    headers = calls[0]["additional_headers"]
    assert headers["Authorization"] == "Bearer sk-test"
    assert "OpenAI-Beta" in headers
    assert json.loads(socket.sent[0]) == {
        "type": "transcription_session.update",
        "session": {"model": "m"},
    }


@pytest.mark.asyncio
async def test_connect_failure_closes_socket(patched_connect):
    socket = DummyWebSocket([])
    patched_connect(socket)
    client = WebSocketClient("sk-test")

    with pytest.raises(ConnectionError):
        await client.connect()

    assert socket.closed is True
    assert client.websocket is None


@pytest.mark.asyncio
async def test_send_audio_chunk_base64_encodes_payload():
    client = WebSocketClient("sk-test")
    socket = DummyWebSocket()
    client.websocket = socket

    await client.send_audio_chunk(b"\x00\x01\x02")

    message = json.loads(socket.sent[0])
    assert message["type"] == "input_audio_buffer.append"
    assert base64.b64decode(message["audio"]) == b"\x00\x01\x02"


@pytest.mark.asyncio
async def test_receive_events_skips_malformed_payloads():
    client = WebSocketClient("sk-test")
    client.websocket = DummyWebSocket(
        [
            "not json",
            json.dumps(["list"]).encode("utf-8"),
            json.dumps({"type": TRANSCRIPTION_COMPLETED_EVENT, "transcript": "hi"}).encode(),
        ]
    )
    client.connected = True

    events = [event async for event in client.receive_events()]

    assert events == [{"type": TRANSCRIPTION_COMPLETED_EVENT, "transcript": "hi"}]
    assert client.connected is False


@pytest.mark.asyncio
async def test_sending_without_connection_raises():
    client = WebSocketClient("sk-test")

    with pytest.raises(ConnectionError):
        await client.send_audio_chunk(b"\x00")


def test_error_message_handles_nested_and_plain_errors():
    assert WebSocketClient.error_message({"error": {"message": "bad key"}}) == "bad key"
    assert WebSocketClient.error_message({"error": "plain"}) == "plain"
    assert WebSocketClient.error_message({}) == "Unknown error"


def test_transcript_payloads_are_not_logged(monkeypatch):
    records: list[str] = []
    monkeypatch.setattr(
        websocket_module.LOGGER, "verbose", lambda source, message, **kw: records.append(message)
    )
    client = WebSocketClient("sk-test")

    client._log_ws_payload("←", {"type": TRANSCRIPTION_COMPLETED_EVENT, "transcript": "secret"})
    client._log_ws_payload("→", {"type": "input_audio_buffer.append", "audio": "AAAA"})

    assert records == ["type=input_audio_buffer.append keys=audio"]
