import os

import pytest

_TEST_ENV_DEFAULTS = {
    "OPENAI_API_KEY": "test-key",
    "CHAT_API_URL": "http://chat.test",
    "CHAT_API_KEY": "",
    "CHAT_SESSION_ID": "",
    "VERBOSE_LOG_CAPTURE_ENABLED": "0",
}

for key, value in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(key, value)


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep critical environment variables stable across tests."""

    for key, value in _TEST_ENV_DEFAULTS.items():
        monkeypatch.setenv(key, value)
