"""Test doubles for the speech capabilities and the chat transport."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Optional

from voice_chat.conversation.models import Attachment, ChatResponse, Source
from voice_chat.core.exceptions import ChatApiError
from voice_chat.speech.capabilities import RecognitionFragment, RecognitionListener


class FakeRecognizer:
    """Records commands; tests drive listener events by hand."""

    def __init__(self, *, supported: bool = True, end_on_stop: bool = False) -> None:
        self._supported = supported
        self.end_on_stop = end_on_stop
        self.listener: Optional[RecognitionListener] = None
        self.calls: list[str] = []
        self.running = False
        self.start_error: Optional[Exception] = None

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def starts(self) -> int:
        return self.calls.count("start")

    def bind(self, listener: RecognitionListener) -> None:
        self.listener = listener

    def start(self) -> None:
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error
        self.running = True

    def stop(self) -> None:
        self.calls.append("stop")
        was_running = self.running
        self.running = False
        if self.end_on_stop and was_running and self.listener is not None:
            self.listener.handle_end()

    def abort(self) -> None:
        self.calls.append("abort")
        self.running = False

    # Helpers used by tests to emulate recognizer events.
    def emit_final(self, text: str) -> None:
        assert self.listener is not None
        self.listener.handle_result([RecognitionFragment(text, is_final=True)])

    def emit_interim(self, text: str) -> None:
        assert self.listener is not None
        self.listener.handle_result([RecognitionFragment(text, is_final=False)])

    def emit_end(self) -> None:
        assert self.listener is not None
        self.running = False
        self.listener.handle_end()

    def emit_error(self, code: str, detail: str = "") -> None:
        assert self.listener is not None
        self.running = False
        self.listener.handle_error(code, detail)


class FakeSynthesizer:
    """Completes utterances only when the test calls ``finish``."""

    def __init__(self, *, supported: bool = True) -> None:
        self._supported = supported
        self.spoken: list[str] = []
        self.stops = 0
        self._pending: Optional[Callable[[], None]] = None

    @property
    def supported(self) -> bool:
        return self._supported

    def speak(self, text: str, on_done: Optional[Callable[[], None]] = None) -> None:
        self.spoken.append(text)
        self._pending = on_done

    def stop(self) -> None:
        self.stops += 1

    def finish(self) -> None:
        callback = self._pending
        self._pending = None
        if callback is not None:
            callback()


class FakeTransport:
    """Chat transport returning queued replies; an exception in the queue is raised."""

    def __init__(self, *replies: object, delay: float = 0.0) -> None:
        self._replies = list(replies)
        self.delay = delay
        self.requests: list[dict[str, object]] = []
        self.released = asyncio.Event()
        self.released.set()

    async def send(
        self,
        text: str,
        mode: str,
        session_id: str,
        attachments: Optional[Sequence[Attachment]] = None,
        reset: bool = False,
    ) -> ChatResponse:
        self.requests.append(
            {
                "text": text,
                "mode": mode,
                "session_id": session_id,
                "attachments": list(attachments or ()),
                "reset": reset,
            }
        )
        await self.released.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if reset:
            return ChatResponse(id=None, text_response="")
        reply = self._replies.pop(0) if self._replies else ""
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ChatResponse):
            return reply
        return ChatResponse(id=None, text_response=str(reply))


def reply(text: str, *sources: Source, reply_id: Optional[str] = None) -> ChatResponse:
    return ChatResponse(id=reply_id, text_response=text, sources=tuple(sources))


def api_error(message: str = "boom", user_message: Optional[str] = None) -> ChatApiError:
    return ChatApiError(message, status=500, user_message=user_message)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the running loop until it holds or ``timeout`` elapses."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
