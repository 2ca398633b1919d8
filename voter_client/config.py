"""Runtime settings read from the environment, and logging setup."""

from dataclasses import dataclass
import logging
import os

from .errors import InvalidConfigError

DEFAULT_BOARD_URL = "http://127.0.0.1:5000/board"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    board_url: str = DEFAULT_BOARD_URL
    timeout: float = 10.0
    log_level: str = "INFO"
    log_format: str = DEFAULT_LOG_FORMAT

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        raw_timeout = env.get("VOTER_CLIENT_TIMEOUT", "10")
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise InvalidConfigError(f"VOTER_CLIENT_TIMEOUT is not a number: {raw_timeout!r}") from None
        if timeout <= 0:
            raise InvalidConfigError("VOTER_CLIENT_TIMEOUT must be positive")

        log_level = env.get("VOTER_CLIENT_LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise InvalidConfigError(f"Unknown log level: {log_level}")

        return cls(
            board_url=env.get("VOTER_CLIENT_BOARD_URL", DEFAULT_BOARD_URL),
            timeout=timeout,
            log_level=log_level,
            log_format=env.get("VOTER_CLIENT_LOG_FORMAT", DEFAULT_LOG_FORMAT),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(format=settings.log_format, level=settings.log_level)
