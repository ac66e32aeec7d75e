"""Logging setup for SleepChat.

Log records carry the notification / sender / slot they concern. Code that
works on one item wraps the work in ``log_context(...)``; a handler filter
copies the active context onto every record emitted inside it, so the JSON
output gets real fields and the dev output gets a ``[key=value]`` suffix.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

CONTEXT_KEYS = ("notification_id", "sender_id", "slot_type", "slot")

_log_context: ContextVar[dict[str, object]] = ContextVar("log_context", default={})


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every log record emitted in this block (and its awaits)."""
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """Copy the active log context onto the record. Explicit ``extra`` wins."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)

        present = {key: getattr(record, key) for key in CONTEXT_KEYS if hasattr(record, key)}
        record.context = (
            " [" + " ".join(f"{key}={value}" for key, value in present.items()) + "]" if present else ""
        )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in CONTEXT_KEYS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


def setup_logging(app_env: str = "development", log_level: str = "INFO") -> None:
    """Configure the root logger for the given environment."""
    root = logging.getLogger()
    root.setLevel(log_level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    if app_env == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] %(message)s%(context)s",
                datefmt="%H:%M:%S",
            )
        )

    root.addHandler(handler)

    # Quieter third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(
        logging.INFO if app_env == "development" else logging.WARNING
    )
