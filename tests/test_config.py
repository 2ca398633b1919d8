import pytest

from voter_client.config import DEFAULT_BOARD_URL, Settings
from voter_client.errors import InvalidConfigError


def test_defaults():
    settings = Settings.from_env({})
    assert settings.board_url == DEFAULT_BOARD_URL
    assert settings.timeout == 10.0
    assert settings.log_level == "INFO"


def test_from_env():
    settings = Settings.from_env(
        {
            "VOTER_CLIENT_BOARD_URL": "https://board.example.org/board",
            "VOTER_CLIENT_TIMEOUT": "2.5",
            "VOTER_CLIENT_LOG_LEVEL": "debug",
        }
    )
    assert settings.board_url == "https://board.example.org/board"
    assert settings.timeout == 2.5
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"VOTER_CLIENT_TIMEOUT": "soon"},
        {"VOTER_CLIENT_TIMEOUT": "0"},
        {"VOTER_CLIENT_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_settings(env):
    with pytest.raises(InvalidConfigError):
        Settings.from_env(env)
