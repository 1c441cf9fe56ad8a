"""Custom exception types shared across the voice chat package."""

from __future__ import annotations

from typing import Optional


class VoiceChatError(RuntimeError):
    """Base class for errors raised by the voice chat client."""


class ConfigurationError(VoiceChatError):
    """Raised when a required setting is missing or invalid."""


class ChatApiError(VoiceChatError):
    """
    Raised by the chat transport when a request fails.

    ``user_message`` is only populated when the server supplied a message that is
    safe to show verbatim; otherwise callers fall back to a generic reply.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.user_message = user_message


class CaptureError(VoiceChatError):
    """A speech recognition failure reported by the capture capability."""

    def __init__(self, code: str, *, transient: bool, detail: str = "") -> None:
        message = f"{code}: {detail}" if detail else code
        super().__init__(message)
        self.code = code
        self.transient = transient
        self.detail = detail


class AudioDeviceError(VoiceChatError):
    """Raised when the microphone or speaker cannot be opened."""

    def __init__(self, message: str, *, permission_denied: bool = False) -> None:
        super().__init__(message)
        self.permission_denied = permission_denied


__all__ = [
    "AudioDeviceError",
    "CaptureError",
    "ChatApiError",
    "ConfigurationError",
    "VoiceChatError",
]
