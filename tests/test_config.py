import io
from pathlib import Path

import pytest

from voice_chat.config import base
from voice_chat.config import (
    CHAT_MODES,
    SESSION_CONFIG,
    _env_bool,
    _env_float,
    _env_int,
    _env_str,
    _persist_env_value,
    normalize_chat_mode,
    require_openai_api_key,
    websocket_headers,
)
from voice_chat.core.exceptions import ConfigurationError


def _stdin(is_tty: bool) -> io.StringIO:
    buffer = io.StringIO()
    buffer.isatty = lambda: is_tty  # type: ignore[attr-defined]
    return buffer


@pytest.mark.parametrize("value", ["1", "true", "TRUE", "Yes", "on", "  YeS  "])
def test_env_bool_truthy_values(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("TEST_BOOL_FLAG", value)

    assert _env_bool("TEST_BOOL_FLAG") is True


def test_env_bool_returns_default_when_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TEST_BOOL_FLAG", raising=False)

    assert _env_bool("TEST_BOOL_FLAG", default=True) is True


def test_numeric_helpers_fall_back_on_invalid_values(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("TEST_INT", "not-an-int")
    monkeypatch.setenv("TEST_FLOAT", "soon")

    assert _env_int("TEST_INT", 7) == 7
    assert _env_float("TEST_FLOAT", 1.5) == 1.5
    err = capsys.readouterr().err
    assert "TEST_INT" in err
    assert "TEST_FLOAT" in err


def test_numeric_helpers_parse_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT", " 10 ")
    monkeypatch.setenv("TEST_FLOAT", "0.25")

    assert _env_int("TEST_INT", 0) == 10
    assert _env_float("TEST_FLOAT", 0.0) == 0.25


def test_env_str_ignores_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_STR", "   ")

    assert _env_str("TEST_STR", "fallback") == "fallback"


def test_persist_env_value_updates_existing_entries(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_path = tmp_path / ".env"
    monkeypatch.setattr(base, "ENV_PATH", env_path)

    assert _persist_env_value("FOO", "1") is True
    assert _persist_env_value("BAR", "2") is True
    assert _persist_env_value("FOO", "updated") is True

    assert env_path.read_text(encoding="utf-8") == "FOO=updated\nBAR=2\n"


def test_normalize_chat_mode() -> None:
    assert CHAT_MODES == ("chat", "query")
    assert normalize_chat_mode(" QUERY ") == "query"
    assert normalize_chat_mode(None) == "chat"
    assert normalize_chat_mode("unknown", fallback="query") == "query"


def test_require_openai_api_key_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    assert require_openai_api_key() == "sk-env"


def test_require_openai_api_key_raises_when_missing_non_interactive(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(base.sys, "stdin", _stdin(False))

    with pytest.raises(ConfigurationError):
        require_openai_api_key()


def test_prompt_for_api_key_persists_value(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(base, "ENV_PATH", tmp_path / ".env")
    monkeypatch.setattr(base.sys, "stdin", _stdin(True))
    monkeypatch.setattr(base, "getpass", lambda prompt: "  sk-typed  ")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert base._prompt_for_api_key() == "sk-typed"
    assert "OPENAI_API_KEY=sk-typed" in (tmp_path / ".env").read_text(encoding="utf-8")


def test_websocket_headers_and_session_config() -> None:
    headers = websocket_headers("sk-123")

    assert headers["Authorization"] == "Bearer sk-123"
    assert headers["OpenAI-Beta"]
    assert SESSION_CONFIG["input_audio_transcription"]["language"]
    assert SESSION_CONFIG["turn_detection"]["type"] == "server_vad"
