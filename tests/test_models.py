import pytest

from voice_chat.conversation.models import (
    Attachment,
    ConversationLog,
    ConversationSession,
    Source,
    Turn,
    load_image_attachment,
)


def test_source_from_payload_prefers_title_and_text() -> None:
    source = Source.from_payload({"title": "Manual.pdf", "text": "Step one", "score": 0.9})

    assert source.title == "Manual.pdf"
    assert source.excerpt == "Step one"
    assert source.metadata == {"score": 0.9}


def test_source_from_payload_falls_back_to_untitled() -> None:
    source = Source.from_payload({"chunk": "orphan passage"})

    assert source.title == "Untitled"
    assert source.excerpt == "orphan passage"


def test_attachment_payload_shape() -> None:
    attachment = Attachment(name="a.png", mime="image/png", content="data:image/png;base64,AA==")

    assert attachment.to_payload() == {
        "name": "a.png",
        "mime": "image/png",
        "contentString": "data:image/png;base64,AA==",
    }


def test_load_image_attachment_encodes_data_url(tmp_path) -> None:
    image = tmp_path / "photo.jpg"
    image.write_bytes(b"\xff\xd8\xff")

    attachment = load_image_attachment(image)

    assert attachment.name == "photo.jpg"
    assert attachment.mime == "image/jpeg"
    assert attachment.content == "data:image/jpeg;base64,/9j/"


def test_load_image_attachment_rejects_other_files(tmp_path) -> None:
    document = tmp_path / "report.pdf"
    document.write_bytes(b"%PDF")

    with pytest.raises(ValueError):
        load_image_attachment(document)


def test_conversation_log_keeps_sources_of_last_successful_turn() -> None:
    appended = []
    log = ConversationLog(on_append=appended.append)
    sources = (Source(title="Doc", excerpt="x"),)

    log.add_user_message("first")
    log.apply_turn(Turn(user_text="first", reply="answer", sources=sources, reply_id="r1"))
    log.add_user_message("second")
    log.apply_turn(Turn(user_text="second", reply="Sorry", failed=True))

    assert log.sources == sources
    assert [m.role for m in log.messages] == ["user", "assistant", "user", "assistant"]
    assert log.messages[1].id == "r1"
    assert len(appended) == 4
    assert len(log) == 4


def test_conversation_log_clear_drops_messages_and_sources() -> None:
    log = ConversationLog()
    log.apply_turn(Turn(user_text="q", reply="a", sources=(Source(title="t", excerpt=""),)))

    log.clear()

    assert log.messages == ()
    assert log.sources == ()


def test_conversation_session_ids() -> None:
    fixed = ConversationSession("team-room")
    generated = ConversationSession()

    assert fixed.id == "team-room"
    assert generated.id.startswith("session-")
    assert generated.id != ConversationSession().id


def test_source_from_payload_keeps_excerpt_out_of_metadata() -> None:
    source = Source.from_payload({"title": "FAQ", "excerpt": "Short answer", "page": 3})

    assert source.excerpt == "Short answer"
    assert source.metadata == {"page": 3}
