from typing import Any

import pytest

from voice_chat.cli import logging_utils
from voice_chat.conversation.models import OrchestratorState


@pytest.fixture(autouse=True)
def reset_verbose_log_capture():
    """Ensure each test starts with logging disabled and no open files."""

    logging_utils.configure_verbose_log_capture(None)
    logging_utils.set_verbose_logging(False)
    yield
    logging_utils.configure_verbose_log_capture(None)
    logging_utils.set_verbose_logging(False)


def test_logger_verbose_writes_to_disk_even_when_disabled(tmp_path):
    log_file = tmp_path / "logs" / "session.log"
    logging_utils.configure_verbose_log_capture(log_file)

    logging_utils.LOGGER.verbose(logging_utils.STATE_LOG_LABEL, "hello", "world", end="!")
    logging_utils.configure_verbose_log_capture(None)

    data = log_file.read_text(encoding="utf-8")
    assert "hello world" in data
    assert data.endswith("!")
    assert "\x1b" not in data


def test_verbose_is_silent_on_console_when_disabled(capsys):
    logging_utils.LOGGER.verbose("TEST", "hidden")

    assert capsys.readouterr().out == ""


def test_state_transition_is_captured(tmp_path):
    log_file = tmp_path / "session.log"
    logging_utils.configure_verbose_log_capture(log_file)

    logging_utils.log_state_transition(
        OrchestratorState.IDLE, OrchestratorState.LISTENING, "voice mode activated"
    )
    logging_utils.configure_verbose_log_capture(None)

    contents = log_file.read_text(encoding="utf-8")
    assert "IDLE -> LISTENING" in contents
    assert "voice mode activated" in contents


def test_state_transition_skipped_when_unchanged(monkeypatch):
    calls: list[tuple] = []
    monkeypatch.setattr(
        logging_utils.LOGGER, "verbose", lambda *args, **kwargs: calls.append(args)
    )

    logging_utils.log_state_transition(
        OrchestratorState.SPEAKING, OrchestratorState.SPEAKING, "noop"
    )

    assert calls == []


def test_per_session_capture_generates_iso_filename(tmp_path):
    log_dir = tmp_path / "logs"
    logging_utils.configure_verbose_log_capture(log_dir, per_session=True)
    path = logging_utils.LOGGER.current_verbose_log_path()
    logging_utils.configure_verbose_log_capture(None)

    assert path is not None
    assert path.parent == log_dir
    assert "T" in path.stem
    assert path.stem[:4].isdigit()


def test_logger_log_includes_timestamp_and_color(capsys):
    logging_utils.LOGGER.log(logging_utils.VOICE_LOG_LABEL, "plain output")

    out = capsys.readouterr().out
    assert out.startswith("[")
    assert "plain output" in out
    assert "\033[" in out


def test_logger_log_with_exc_info(capsys):
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        logging_utils.LOGGER.log(
            logging_utils.ERROR_LOG_LABEL, "Failure encountered", exc_info=exc, error=True
        )

    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "RuntimeError: boom" in err


def test_logger_log_rejects_unknown_option():
    with pytest.raises(TypeError):
        bad_kwargs: dict[str, Any] = {"unsupported": True}
        logging_utils.LOGGER.log("TRACE", "noop", **bad_kwargs)


def test_ws_log_label_directional_variants():
    assert logging_utils.ws_log_label() == logging_utils.WS_LOG_LABEL
    assert logging_utils.ws_log_label("←") == "WS←"
    assert logging_utils.ws_log_label("→") == "WS→"
    assert logging_utils.ws_log_label("?") == logging_utils.WS_LOG_LABEL


def test_strip_ansi_sequences_removes_codes():
    assert logging_utils.strip_ansi_sequences("\033[31mhello\033[0m world") == "hello world"
