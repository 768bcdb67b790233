"""
Logging setup for cloudctl.

All modules log through the ``cloudctl`` logger (or a child of it).
:func:`configure_logging` attaches a single handler emitting either
JSON-structured records or ``key=value`` text, carrying the operation
context (provider, operation, group, item, attempt) passed via ``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cloudctl.base.config import LogConfig

LOGGER_NAME = "cloudctl"

# Attributes that may be attached to a record through ``extra``.
CONTEXT_KEYS = ("request_id", "provider", "operation", "group", "item", "attempt")


class StructuredFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable ``time LEVEL message key=value`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, self.datefmt),
            f"{record.levelname:<7}",
            record.getMessage(),
        ]
        for key in CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                parts.append(f"{key}={val}")
        if record.exc_info and record.exc_info[1]:
            parts.append(f"exception={record.exc_info[1]}")
        return " ".join(parts)


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "json": StructuredFormatter,
    "text": TextFormatter,
}


def _make_handler(output: str) -> logging.Handler:
    if output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if output == "stderr":
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(output, encoding="utf-8")


def configure_logging(config: LogConfig, name: str = LOGGER_NAME) -> logging.Logger:
    """Install one handler on the ``cloudctl`` logger according to *config*.

    Calling it again replaces the handler installed by the previous call.

    Args:
        config: Log level, format (``text`` / ``json``) and output
            (``stdout``, ``stderr`` or a file path).
        name: Logger name to configure.

    Returns:
        The configured logger.
    """
    log = logging.getLogger(name)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    handler = _make_handler(config.output)
    handler.setFormatter(_FORMATTERS[config.format]())
    log.addHandler(handler)
    log.setLevel(config.level.upper())
    log.propagate = False
    return log


def new_request_id() -> str:
    """Short correlation id for grouping the records of one command."""
    return uuid.uuid4().hex[:12]


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges fixed context into every record's ``extra``.

    Example::

        log = ContextAdapter(logging.getLogger("cloudctl"), provider="aws")
        log.info("Requested certificate", extra={"item": "example.com"})
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, context)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
