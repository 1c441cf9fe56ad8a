"""
HTTP client for the remote chat assistant.
Sends one message per request and returns the assistant's text reply and sources.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any, Optional

import aiohttp

from voice_chat.cli.logging_utils import CHAT_LOG_LABEL, ERROR_LOG_LABEL, LOGGER
from voice_chat.config import (
    CHAT_API_ENDPOINT,
    CHAT_API_KEY,
    CHAT_API_URL,
    CHAT_TIMEOUT_SECONDS,
)
from voice_chat.conversation.models import Attachment, ChatResponse, Source
from voice_chat.core.exceptions import ChatApiError

_MAX_ERROR_SNIPPET = 200


class ChatClient:
    """Posts chat messages to the assistant service over HTTP."""

    def __init__(
        self,
        *,
        base_url: str = CHAT_API_URL,
        endpoint: str = CHAT_API_ENDPOINT,
        api_key: str = CHAT_API_KEY,
        timeout_seconds: float = CHAT_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = base_url.rstrip("/") + "/" + endpoint.lstrip("/")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return self._url

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def send(
        self,
        text: str,
        mode: str,
        session_id: str,
        attachments: Optional[Sequence[Attachment]] = None,
        reset: bool = False,
    ) -> ChatResponse:
        """
        Send a message (or a reset request) and return the parsed reply.

        Raises:
            ChatApiError: on connection failures, timeouts, non-2xx statuses, or
                payloads that cannot be parsed.
        """

        payload: dict[str, Any] = {
            "message": text,
            "mode": mode,
            "sessionId": session_id,
        }
        if attachments:
            payload["attachments"] = [item.to_payload() for item in attachments]
        if reset:
            payload["reset"] = True

        LOGGER.verbose(
            CHAT_LOG_LABEL,
            f"POST {self._url} mode={mode} session={session_id} "
            f"attachments={len(attachments or ())} reset={reset}",
        )
        session = self._ensure_session()
        try:
            async with session.post(
                self._url,
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                body = await response.text()
                status = response.status
        except asyncio.TimeoutError as exc:
            raise ChatApiError("Chat request timed out") from exc
        except aiohttp.ClientError as exc:
            raise ChatApiError(f"Unable to reach chat service: {exc}") from exc

        data = self._decode_body(body, status)
        if status >= 400:  # noqa: PLR2004
            server_message = self._extract_error(data)
            detail = server_message or body[:_MAX_ERROR_SNIPPET]
            raise ChatApiError(
                f"Chat service returned HTTP {status}: {detail}",
                status=status,
                user_message=server_message,
            )
        server_error = self._extract_error(data, keys=("error",))
        if server_error:
            raise ChatApiError(
                f"Chat service reported an error: {server_error}",
                status=status,
                user_message=server_error,
            )
        return self._parse_response(data)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internal helpers
    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def _decode_body(body: str, status: int) -> dict[str, Any]:
        if not body.strip():
            return {}
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            snippet = body[:_MAX_ERROR_SNIPPET]
            if status >= 400:  # noqa: PLR2004
                return {}
            LOGGER.log(ERROR_LOG_LABEL, f"Malformed chat payload: {snippet!r}", error=True)
            raise ChatApiError(f"Malformed chat response at pos {exc.pos}", status=status) from exc
        if not isinstance(data, dict):
            raise ChatApiError("Unexpected chat response shape", status=status)
        return data

    @staticmethod
    def _extract_error(
        data: dict[str, Any], keys: tuple[str, ...] = ("error", "message")
    ) -> Optional[str]:
        for key in keys:
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict):
                nested = value.get("message")
                if isinstance(nested, str) and nested.strip():
                    return nested.strip()
        return None

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> ChatResponse:
        text = data.get("textResponse")
        if text is None:
            text = data.get("text_response", "")
        raw_sources = data.get("sources") or []
        sources = tuple(
            Source.from_payload(item) for item in raw_sources if isinstance(item, dict)
        )
        reply_id = data.get("id")
        return ChatResponse(
            id=str(reply_id) if reply_id is not None else None,
            text_response=str(text or ""),
            sources=sources,
        )


__all__ = ["ChatClient"]
