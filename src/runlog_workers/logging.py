"""Structured logging for the runlog worker and CLI.

RUNLOG_LOG_FORMAT selects "json" (one object per line) or "text";
RUNLOG_LOG_LEVEL sets the threshold by name or number.

Call sites attach context through ``extra`` with a ``runlog_`` prefix
(``runlog_owner_id``, ``runlog_job_id``, ``runlog_updates``, ...). The JSON
formatter gathers those under "context" with the prefix stripped; the text
formatter appends them as key=value pairs.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_PREFIX = "runlog_"

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _context(record: logging.LogRecord) -> dict:
    return {
        key[len(CONTEXT_PREFIX):]: value
        for key, value in record.__dict__.items()
        if key.startswith(CONTEXT_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            log_entry["service"] = self.service

        context = _context(record)
        if context:
            log_entry["context"] = context

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plaintext lines with runlog_* context appended as key=value."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = _context(record)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            line = f"{line} [{pairs}]"
        return line


def parse_log_level(value: str | int | None, default: int = logging.INFO) -> int:
    """Accept 'debug', 'INFO', '20' or 20; raise ValueError for anything else."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = value.strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    level = logging.getLevelNamesMapping().get(text.upper())
    if level is None:
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def setup_logging(
    log_format: str,
    level: int = logging.INFO,
    *,
    service: str | None = None,
) -> None:
    """Route the root logger to stderr in JSON or plaintext."""
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if log_format == "json":
        handler.setFormatter(JSONFormatter(service=service))
    else:
        handler.setFormatter(ContextTextFormatter())
    root.addHandler(handler)
