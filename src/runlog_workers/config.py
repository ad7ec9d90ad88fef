import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .logging import parse_log_level

LOG_FORMATS = ("json", "text")

N = TypeVar("N", int, float)


def _env_number(name: str, default: N, cast: Callable[[str], N], minimum: N) -> N:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number (got {raw!r})") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum} (got {raw!r})")
    return value


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    poll_interval_seconds: float = 5.0
    batch_size: int = 10
    max_retries: int = 3
    log_format: str = "json"
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL", "").strip()
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        # LISTEN needs a session-level connection; poolers in transaction mode drop it
        listen_url = os.environ.get("RUNLOG_WORKER_LISTEN_DATABASE_URL", "").strip()

        log_format = os.environ.get("RUNLOG_LOG_FORMAT", "").strip().lower() or "json"
        if log_format not in LOG_FORMATS:
            raise RuntimeError(
                f"RUNLOG_LOG_FORMAT must be one of {', '.join(LOG_FORMATS)} (got {log_format!r})"
            )
        try:
            log_level = parse_log_level(os.environ.get("RUNLOG_LOG_LEVEL"))
        except ValueError as exc:
            raise RuntimeError(f"RUNLOG_LOG_LEVEL: {exc}") from exc

        return cls(
            database_url=database_url,
            listen_database_url=listen_url or database_url,
            poll_interval_seconds=_env_number("RUNLOG_POLL_INTERVAL", 5.0, float, 0.1),
            batch_size=_env_number("RUNLOG_BATCH_SIZE", 10, int, 1),
            max_retries=_env_number("RUNLOG_MAX_RETRIES", 3, int, 0),
            log_format=log_format,
            log_level=log_level,
        )
