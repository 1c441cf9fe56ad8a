import pytest
from fakes import FakeTransport, api_error, reply

from voice_chat.conversation.models import Attachment, Source
from voice_chat.conversation.turns import TurnExecutor

FALLBACK = "Something went wrong."


@pytest.mark.asyncio
async def test_successful_reply_becomes_turn_with_sources():
    source = Source(title="Doc", excerpt="Relevant text")
    transport = FakeTransport(reply("Hi there", source, reply_id="r-1"))
    executor = TurnExecutor(transport, fallback_reply=FALLBACK)
    attachment = Attachment(name="a.png", mime="image/png", content="data:image/png;base64,AA==")

    turn = await executor.run_turn("Hello", "session-1", "query", attachment)

    assert turn.user_text == "Hello"
    assert turn.reply == "Hi there"
    assert turn.sources == (source,)
    assert turn.reply_id == "r-1"
    assert turn.failed is False
    request = transport.requests[0]
    assert request["session_id"] == "session-1"
    assert request["mode"] == "query"
    assert request["attachments"] == [attachment]


@pytest.mark.asyncio
async def test_transport_error_yields_fallback_turn():
    executor = TurnExecutor(FakeTransport(api_error("HTTP 500")), fallback_reply=FALLBACK)

    turn = await executor.run_turn("Hello", "session-1", "chat")

    assert turn.failed is True
    assert turn.reply == FALLBACK
    assert turn.sources == ()


@pytest.mark.asyncio
async def test_displayable_server_message_replaces_fallback():
    transport = FakeTransport(api_error("HTTP 429", user_message="Rate limit reached."))
    executor = TurnExecutor(transport, fallback_reply=FALLBACK)

    turn = await executor.run_turn("Hello", "session-1", "chat")

    assert turn.failed is True
    assert turn.reply == "Rate limit reached."


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained():
    executor = TurnExecutor(FakeTransport(KeyError("textResponse")), fallback_reply=FALLBACK)

    turn = await executor.run_turn("Hello", "session-1", "chat")

    assert turn.failed is True
    assert turn.reply == FALLBACK


@pytest.mark.asyncio
async def test_reset_sends_reset_request_and_reports_failure():
    transport = FakeTransport()
    executor = TurnExecutor(transport)

    assert await executor.reset("session-9", "chat") is True
    assert transport.requests[-1]["reset"] is True
    assert transport.requests[-1]["text"] == ""

    class FailingTransport(FakeTransport):
        async def send(self, *args, **kwargs):
            raise api_error()

    assert await TurnExecutor(FailingTransport()).reset("session-9", "chat") is False
