"""Value types shared by the turn executor, the orchestrator, and the CLI."""

from __future__ import annotations

import base64
import mimetypes
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional
from uuid import uuid4

MessageRole = Literal["user", "assistant"]


class OrchestratorState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_REPLY = "awaiting_reply"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class Source:
    """A document excerpt the assistant cited; opaque to the voice loop."""

    title: str
    excerpt: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Source":
        title = payload.get("title") or payload.get("name") or "Untitled"
        excerpt = payload.get("excerpt") or payload.get("text") or payload.get("chunk") or ""
        extra = {
            key: value
            for key, value in payload.items()
            if key not in {"title", "text", "excerpt"}
        }
        return cls(title=str(title), excerpt=str(excerpt), metadata=extra)


@dataclass(frozen=True)
class Attachment:
    name: str
    mime: str
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"name": self.name, "mime": self.mime, "contentString": self.content}


def load_image_attachment(path: str | Path) -> Attachment:
    """Read an image from disk and encode it as a data URL attachment."""

    file_path = Path(path).expanduser()
    mime, _ = mimetypes.guess_type(file_path.name)
    if not mime or not mime.startswith("image/"):
        raise ValueError(f"Only image attachments are supported (got {file_path.name}).")
    encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
    return Attachment(name=file_path.name, mime=mime, content=f"data:{mime};base64,{encoded}")


@dataclass(frozen=True)
class ChatResponse:
    id: Optional[str]
    text_response: str
    sources: tuple[Source, ...] = ()


@dataclass(frozen=True)
class Turn:
    """One user utterance and the assistant reply (or fallback) it produced."""

    user_text: str
    reply: str
    sources: tuple[Source, ...] = ()
    failed: bool = False
    reply_id: Optional[str] = None


@dataclass(frozen=True)
class ChatMessage:
    role: MessageRole
    text: str
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)
    attachment: Optional[Attachment] = None


class ConversationSession:
    """Session identifier sent with every transport call of one run."""

    def __init__(self, session_id: Optional[str] = None) -> None:
        self.id = session_id or f"session-{uuid4().hex}"

    def __repr__(self) -> str:
        return f"ConversationSession(id={self.id!r})"


MessageListener = Callable[[ChatMessage], None]


class ConversationLog:
    """In-memory message list plus the sources of the latest successful turn."""

    def __init__(self, on_append: Optional[MessageListener] = None) -> None:
        self._messages: list[ChatMessage] = []
        self._sources: tuple[Source, ...] = ()
        self._on_append = on_append

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def sources(self) -> tuple[Source, ...]:
        return self._sources

    def __len__(self) -> int:
        return len(self._messages)

    def add_user_message(self, text: str, attachment: Optional[Attachment] = None) -> ChatMessage:
        return self._append(ChatMessage(role="user", text=text, attachment=attachment))

    def apply_turn(self, turn: Turn) -> ChatMessage:
        """Record the assistant side of a turn; failed turns keep the current sources."""

        if not turn.failed:
            self._sources = tuple(turn.sources)
        if turn.reply_id:
            message = ChatMessage(role="assistant", text=turn.reply, id=turn.reply_id)
        else:
            message = ChatMessage(role="assistant", text=turn.reply)
        return self._append(message)

    def clear(self) -> None:
        self._messages.clear()
        self._sources = ()

    def _append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        if self._on_append is not None:
            self._on_append(message)
        return message


__all__ = [
    "Attachment",
    "ChatMessage",
    "ChatResponse",
    "ConversationLog",
    "ConversationSession",
    "OrchestratorState",
    "Source",
    "Turn",
    "load_image_attachment",
]
