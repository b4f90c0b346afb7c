"""Configuration constants, .env parsing, and scheduling defaults."""

from __future__ import annotations

import os
from pathlib import Path


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        key, sep, value = trimmed.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key not in wanted:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


_ENV_KEYS = [
    "SCHEDULER_POLL_INTERVAL",
    "MAX_CONCURRENT_EXECUTIONS",
    "DEFAULT_SCHEDULE_BUFFER_MINUTES",
    "SCHEDULE_LOOKAHEAD_HOURS",
    "DEFAULT_MAX_RETRIES",
    "STORE_BACKEND",
    "LOG_LEVEL",
    "LOG_FORMAT",
]

# Process environment wins over .env.
_env_config = read_env_file(_ENV_KEYS)


def _setting(key: str, default: str) -> str:
    return os.environ.get(key) or _env_config.get(key, default)


SCHEDULER_POLL_INTERVAL: float = float(_setting("SCHEDULER_POLL_INTERVAL", "30"))  # seconds
MAX_CONCURRENT_EXECUTIONS: int = max(1, int(_setting("MAX_CONCURRENT_EXECUTIONS", "4")))

DEFAULT_SCHEDULE_BUFFER_MINUTES: int = int(_setting("DEFAULT_SCHEDULE_BUFFER_MINUTES", "15"))
SCHEDULE_LOOKAHEAD_HOURS: int = int(_setting("SCHEDULE_LOOKAHEAD_HOURS", "168"))  # 1 week
DEFAULT_MAX_RETRIES: int = max(0, int(_setting("DEFAULT_MAX_RETRIES", "3")))
DEFAULT_PRIORITY: int = 0

# Delay applied when a failed task is re-queued by hand.
RETRY_DELAY_MINUTES: int = 15
OPTIMAL_TIME_SEARCH_DAYS: int = 7

DEFAULT_PAGE_SIZE: int = 20
MAX_PAGE_SIZE: int = 100

STORE_BACKEND: str = _setting("STORE_BACKEND", "memory").lower()

LOG_LEVEL: str = _setting("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = _setting("LOG_FORMAT", "console").lower()  # console | json

# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
