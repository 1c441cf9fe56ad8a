"""Chat transport, capture timing, and voice loop settings."""

from __future__ import annotations

import sys

from .base import _DEFAULTS, _env_bool, _env_float, _env_str

CHAT_MODES = ("chat", "query")

_CHAT = _DEFAULTS.get("chat", {})
_CAPTURE = _DEFAULTS.get("capture", {})
_VOICE_LOOP = _DEFAULTS.get("voice_loop", {})


def normalize_chat_mode(value: str | None, fallback: str = "chat") -> str:
    """Return a supported chat mode, falling back when the value is unknown."""

    if not value:
        return fallback
    normalized = value.strip().lower()
    if normalized in CHAT_MODES:
        return normalized
    sys.stderr.write(f"Unknown chat mode {value!r}; falling back to {fallback!r}.\n")
    return fallback


# Chat transport
CHAT_API_URL = _env_str("CHAT_API_URL", _CHAT.get("base_url", "http://localhost:3001"))
CHAT_API_ENDPOINT = _env_str("CHAT_API_ENDPOINT", _CHAT.get("endpoint", "/api/v1/chat"))
CHAT_API_KEY = _env_str("CHAT_API_KEY", "")
CHAT_MODE = normalize_chat_mode(_env_str("CHAT_MODE", _CHAT.get("mode", "chat")))
CHAT_SESSION_ID = _env_str("CHAT_SESSION_ID", _CHAT.get("session_id", ""))
CHAT_TIMEOUT_SECONDS = _env_float("CHAT_TIMEOUT_SECONDS", _CHAT.get("timeout_seconds", 60.0))
FALLBACK_REPLY = _env_str(
    "FALLBACK_REPLY",
    _CHAT.get("fallback_reply", "Sorry, something went wrong. Please try again."),
)

# Capture controller timers
NO_SPEECH_TIMEOUT_SECONDS = _env_float(
    "NO_SPEECH_TIMEOUT_SECONDS", _CAPTURE.get("no_speech_timeout_seconds", 5.0)
)
FINAL_SILENCE_SECONDS = _env_float(
    "FINAL_SILENCE_SECONDS", _CAPTURE.get("final_silence_seconds", 1.0)
)
INTERIM_SILENCE_SECONDS = _env_float(
    "INTERIM_SILENCE_SECONDS", _CAPTURE.get("interim_silence_seconds", 3.0)
)
CAPTURE_RETRY_DELAY_SECONDS = _env_float(
    "CAPTURE_RETRY_DELAY_SECONDS", _CAPTURE.get("retry_delay_seconds", 1.0)
)
CAPTURE_MAX_RETRY_DELAY_SECONDS = _env_float(
    "CAPTURE_MAX_RETRY_DELAY_SECONDS", _CAPTURE.get("max_retry_delay_seconds", 8.0)
)

# Voice loop continuations
ACTIVATION_DELAY_SECONDS = _env_float(
    "ACTIVATION_DELAY_SECONDS", _VOICE_LOOP.get("activation_delay_seconds", 0.5)
)
EMPTY_RESTART_DELAY_SECONDS = _env_float(
    "EMPTY_RESTART_DELAY_SECONDS", _VOICE_LOOP.get("empty_restart_delay_seconds", 1.5)
)
POST_SPEECH_DELAY_SECONDS = _env_float(
    "POST_SPEECH_DELAY_SECONDS", _VOICE_LOOP.get("post_speech_delay_seconds", 1.0)
)
NO_REPLY_RESTART_DELAY_SECONDS = _env_float(
    "NO_REPLY_RESTART_DELAY_SECONDS", _VOICE_LOOP.get("no_reply_restart_delay_seconds", 1.0)
)
ERROR_RESTART_DELAY_SECONDS = _env_float(
    "ERROR_RESTART_DELAY_SECONDS", _VOICE_LOOP.get("error_restart_delay_seconds", 2.0)
)
AUTO_SPEAK = _env_bool("AUTO_SPEAK", _VOICE_LOOP.get("auto_speak", True))
AUTO_SPEAK_DELAY_SECONDS = _env_float(
    "AUTO_SPEAK_DELAY_SECONDS", _VOICE_LOOP.get("auto_speak_delay_seconds", 0.5)
)

__all__ = [
    "CHAT_MODES",
    "normalize_chat_mode",
    "CHAT_API_URL",
    "CHAT_API_ENDPOINT",
    "CHAT_API_KEY",
    "CHAT_MODE",
    "CHAT_SESSION_ID",
    "CHAT_TIMEOUT_SECONDS",
    "FALLBACK_REPLY",
    "NO_SPEECH_TIMEOUT_SECONDS",
    "FINAL_SILENCE_SECONDS",
    "INTERIM_SILENCE_SECONDS",
    "CAPTURE_RETRY_DELAY_SECONDS",
    "CAPTURE_MAX_RETRY_DELAY_SECONDS",
    "ACTIVATION_DELAY_SECONDS",
    "EMPTY_RESTART_DELAY_SECONDS",
    "POST_SPEECH_DELAY_SECONDS",
    "NO_REPLY_RESTART_DELAY_SECONDS",
    "ERROR_RESTART_DELAY_SECONDS",
    "AUTO_SPEAK",
    "AUTO_SPEAK_DELAY_SECONDS",
]
