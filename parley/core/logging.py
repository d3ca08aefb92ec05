"""Parley logging configuration.

Every record carries a ``listener`` attribute naming the listener (user or
admin) whose request produced it, or ``-`` outside a request.
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from typing import Literal

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(listener)-5s | %(name)s | %(message)s"

_listener: ContextVar[str] = ContextVar("parley_listener", default="-")


def bind_listener(name: str) -> Token[str]:
    """Tag log records from the current task with a listener name."""
    return _listener.set(name)


def unbind_listener(token: Token[str]) -> None:
    _listener.reset(token)


class ListenerFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.listener = _listener.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; json.dumps keeps user-supplied text from breaking it."""

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "listener": getattr(record, "listener", "-"),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "text"] = "text",
) -> None:
    """
    Configure process-wide logging for both listeners.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON lines, 'text' for a console format
    """
    numeric_level = getattr(logging, level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ListenerFilter())
    if format_type == "structured":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logging.root.handlers = [handler]
    logging.root.setLevel(numeric_level)

    # uvicorn access lines duplicate what MetricsMiddleware already counts
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if numeric_level <= logging.DEBUG else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the parley namespace."""
    return logging.getLogger(f"parley.{name}")
