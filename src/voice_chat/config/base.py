"""
Shared configuration helpers and non-conversation settings for the voice chat client.

Defaults live in ``config/defaults.toml`` and can be overridden via environment
variables or CLI flags.
"""

from __future__ import annotations

import copy
import os
import sys
from getpass import getpass
from pathlib import Path

import tomllib
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULTS_PATH = PROJECT_ROOT / "config" / "defaults.toml"
ENV_PATH = PROJECT_ROOT / ".env"

load_dotenv(ENV_PATH)

if not DEFAULTS_PATH.exists():  # pragma: no cover - configuration issue
    raise FileNotFoundError(
        f"Missing configuration defaults at {DEFAULTS_PATH}. Ensure config/defaults.toml exists."
    )

with DEFAULTS_PATH.open("rb") as defaults_file:
    _DEFAULTS = tomllib.load(defaults_file)


def _coerce_path(value: str | Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (PROJECT_ROOT / path).resolve()
    return path


def _env_bool(name: str, default: bool = False) -> bool:
    """Return True when the env var is set to a truthy value."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        _warn_invalid_env_value(name, value, default)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        _warn_invalid_env_value(name, value, default)
        return default


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    trimmed = value.strip()
    return trimmed or default


def _env_path(name: str, default: str) -> Path:
    raw = os.getenv(name, default)
    return _coerce_path(raw)


def _normalize_language(value: str | None, fallback: str = "en") -> str:
    """Return a normalized language tag, defaulting to ``fallback`` when empty."""

    if value is None:
        return fallback
    trimmed = value.strip()
    return trimmed or fallback


def _persist_env_value(key: str, value: str) -> bool:
    """Write or update a key=value entry in the repo's .env file, returning True on success."""

    existing_lines: list[str] = []
    replaced = False

    if ENV_PATH.exists():
        try:
            existing_lines = ENV_PATH.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            sys.stderr.write(f"Unable to read {ENV_PATH}: {exc}\n")
            return False

    new_lines: list[str] = []
    for line in existing_lines:
        if line.startswith(f"{key}="):
            new_lines.append(f"{key}={value}")
            replaced = True
        else:
            new_lines.append(line)

    if not replaced:
        new_lines.append(f"{key}={value}")

    contents = "\n".join(new_lines).rstrip()
    try:
        ENV_PATH.write_text((contents + "\n") if contents else "\n", encoding="utf-8")
    except OSError as exc:
        sys.stderr.write(f"Unable to write {ENV_PATH}: {exc}\n")
        return False
    return True


def _warn_invalid_env_value(name: str, value: str | None, default: object) -> None:
    """Emit a warning when env overrides cannot be parsed."""

    sys.stderr.write(f"Invalid value for {name}={value!r}; falling back to {default!r}.\n")


def _prompt_for_api_key() -> str | None:
    """Interactively request and persist the OpenAI API key when missing."""

    if not sys.stdin.isatty():  # Non-interactive session (CI, tests, etc.)
        return None

    sys.stderr.write(
        "\nOPENAI_API_KEY is missing. Paste your OpenAI API key to store it in .env:\n"
    )
    try:
        api_key = getpass("OpenAI API key: ").strip()
    except (EOFError, KeyboardInterrupt):  # pragma: no cover - interactive prompt
        sys.stderr.write("\nNo API key provided; aborting.\n")
        return None

    if not api_key:
        sys.stderr.write("Empty API key provided; aborting.\n")
        return None

    _persist_env_value("OPENAI_API_KEY", api_key)
    os.environ["OPENAI_API_KEY"] = api_key
    sys.stderr.write("Saved API key to .env\n\n")
    return api_key


def require_openai_api_key() -> str:
    """
    Return the OpenAI API key used by the speech adapters.

    The chat loop itself does not need OpenAI, so the key is only resolved when the
    realtime recognizer or the speech synthesizer is built.
    """

    from voice_chat.core.exceptions import ConfigurationError

    api_key = os.getenv("OPENAI_API_KEY") or _prompt_for_api_key()
    if not api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY not configured. "
            "Set the variable manually or rerun in an interactive shell to supply it."
        )
    return api_key


# Audio Configuration
_AUDIO = _DEFAULTS["audio"]
SAMPLE_RATE = _env_int("SAMPLE_RATE", _AUDIO["sample_rate"])
BUFFER_SIZE = _env_int("BUFFER_SIZE", _AUDIO["buffer_size"])
CHANNELS = _env_int("CHANNELS", _AUDIO["channels"])
DTYPE = os.getenv("DTYPE", _AUDIO["dtype"])
AUDIO_INPUT_DEVICE = os.getenv("AUDIO_INPUT_DEVICE")
AUDIO_QUEUE_MAX_SIZE = _env_int("AUDIO_QUEUE_MAX_SIZE", _AUDIO["queue_max_size"])

# OpenAI speech configuration
_OPENAI = _DEFAULTS["openai"]
OPENAI_REALTIME_ENDPOINT = os.getenv("OPENAI_REALTIME_ENDPOINT", _OPENAI["realtime_endpoint"])
OPENAI_BETA_HEADER = _OPENAI["beta_header"]
OPENAI_TRANSCRIPTION_MODEL = _env_str(
    "OPENAI_TRANSCRIPTION_MODEL", _OPENAI["transcription_model"]
)
TTS_MODEL = _env_str("TTS_MODEL", _OPENAI["tts_model"])
TTS_VOICE = _env_str("TTS_VOICE", _OPENAI["tts_voice"])
TTS_SAMPLE_RATE = _env_int("TTS_SAMPLE_RATE", _OPENAI["tts_sample_rate"])

# Recognition language is shared by the realtime session and the capture controller.
RECOGNITION_LANGUAGE = _normalize_language(
    os.getenv("RECOGNITION_LANGUAGE"),
    _DEFAULTS["capture"].get("language", "en"),
)

# Session Configuration for OpenAI Realtime API (Transcription mode)
SESSION_CONFIG = copy.deepcopy(_DEFAULTS["session"])
SESSION_CONFIG["input_audio_transcription"]["model"] = OPENAI_TRANSCRIPTION_MODEL
SESSION_CONFIG["input_audio_transcription"]["language"] = RECOGNITION_LANGUAGE


def websocket_headers(api_key: str) -> dict[str, str]:
    """Return the headers required by the realtime transcription endpoint."""

    return {
        "Authorization": f"Bearer {api_key}",
        "OpenAI-Beta": OPENAI_BETA_HEADER,
    }


_LOGGING = _DEFAULTS.get("logging", {})
VERBOSE_LOG_CAPTURE_ENABLED = _env_bool(
    "VERBOSE_LOG_CAPTURE_ENABLED", _LOGGING.get("verbose_capture_enabled", False)
)
if VERBOSE_LOG_CAPTURE_ENABLED:
    _DEFAULT_VERBOSE_DIR = _LOGGING.get("verbose_log_directory")
    default_verbose_dir = (
        _DEFAULT_VERBOSE_DIR.strip()
        if isinstance(_DEFAULT_VERBOSE_DIR, str) and _DEFAULT_VERBOSE_DIR.strip()
        else "logs"
    )

    VERBOSE_LOG_DIRECTORY = _env_path("VERBOSE_LOG_DIRECTORY", default_verbose_dir)
else:
    VERBOSE_LOG_DIRECTORY = None

__all__ = [
    "PROJECT_ROOT",
    "DEFAULTS_PATH",
    "ENV_PATH",
    "_DEFAULTS",
    "_coerce_path",
    "_env_bool",
    "_env_int",
    "_env_float",
    "_env_str",
    "_env_path",
    "_normalize_language",
    "_persist_env_value",
    "_prompt_for_api_key",
    "require_openai_api_key",
    "websocket_headers",
    "SAMPLE_RATE",
    "BUFFER_SIZE",
    "CHANNELS",
    "DTYPE",
    "AUDIO_INPUT_DEVICE",
    "AUDIO_QUEUE_MAX_SIZE",
    "OPENAI_REALTIME_ENDPOINT",
    "OPENAI_BETA_HEADER",
    "OPENAI_TRANSCRIPTION_MODEL",
    "TTS_MODEL",
    "TTS_VOICE",
    "TTS_SAMPLE_RATE",
    "RECOGNITION_LANGUAGE",
    "SESSION_CONFIG",
    "VERBOSE_LOG_CAPTURE_ENABLED",
    "VERBOSE_LOG_DIRECTORY",
]
