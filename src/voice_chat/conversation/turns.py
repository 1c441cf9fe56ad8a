"""Turn executor: one utterance in, one conversation turn out."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional, Protocol

from voice_chat.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, TURN_LOG_LABEL
from voice_chat.config import FALLBACK_REPLY
from voice_chat.core.exceptions import ChatApiError

from .models import Attachment, ChatResponse, Turn


class ChatTransport(Protocol):
    async def send(
        self,
        text: str,
        mode: str,
        session_id: str,
        attachments: Optional[Sequence[Attachment]] = None,
        reset: bool = False,
    ) -> ChatResponse: ...


class TurnExecutor:
    """Maps transport responses and failures into immutable turns."""

    def __init__(self, transport: ChatTransport, *, fallback_reply: str = FALLBACK_REPLY) -> None:
        self._transport = transport
        self._fallback_reply = fallback_reply

    @property
    def fallback_reply(self) -> str:
        return self._fallback_reply

    async def run_turn(
        self,
        text: str,
        session_id: str,
        mode: str,
        attachment: Optional[Attachment] = None,
    ) -> Turn:
        """Send ``text`` and return the resulting turn; transport errors never escape."""

        attachments = [attachment] if attachment else None
        try:
            response = await self._transport.send(text, mode, session_id, attachments)
        except ChatApiError as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Chat request failed: {exc}", error=True)
            return Turn(
                user_text=text,
                reply=exc.user_message or self._fallback_reply,
                failed=True,
            )
        except Exception as exc:
            LOGGER.log(
                ERROR_LOG_LABEL,
                f"Unexpected chat failure: {exc}",
                error=True,
                exc_info=exc,
            )
            return Turn(user_text=text, reply=self._fallback_reply, failed=True)

        LOGGER.verbose(
            TURN_LOG_LABEL,
            f"Reply received (chars={len(response.text_response)}, "
            f"sources={len(response.sources)})",
        )
        return Turn(
            user_text=text,
            reply=response.text_response,
            sources=tuple(response.sources),
            reply_id=response.id,
        )

    async def reset(self, session_id: str, mode: str) -> bool:
        """Ask the service to forget the session; failures are logged, not raised."""

        try:
            await self._transport.send("", mode, session_id, None, True)
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Chat reset failed: {exc}", error=True)
            return False
        LOGGER.verbose(TURN_LOG_LABEL, f"Session {session_id} reset.")
        return True


__all__ = ["ChatTransport", "TurnExecutor"]
