"""
Centralized Logging

Architectural Intent:
- One stderr handler on the `shipwright` logger, human-readable or JSON
- Rollout records carry deployment_id, group, host and step through
  `extra=`; both formats surface them so one host's story can be grepped
  or filtered out of a concurrent rollout
- Transport libraries (paramiko, invoke, fabric, httpx) stay at WARNING
  unless debugging, so a verbose run shows rollout progress, not SSH chatter
- Supports configurable log levels via CLI flags (--verbose, --debug) and
  the `log_level` config key
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Optional, TextIO

CONTEXT_FIELDS = ("deployment_id", "group", "host", "step")

TRANSPORT_LOGGERS = ("paramiko", "invoke", "fabric", "httpx", "httpcore")

HUMAN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def record_context(record: logging.LogRecord) -> dict:
    """The rollout context fields set on `record`, in a fixed order."""
    context = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value
    return context


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(record_context(record))
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class ContextFormatter(logging.Formatter):
    """Human format with the rollout context appended as `key=value` pairs."""

    def __init__(self, fmt: str = HUMAN_FORMAT) -> None:
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        head, newline, rest = line.partition("\n")
        return f"{head} [{pairs}]{newline}{rest}"


def parse_level(name: str) -> int:
    """Map a level name from config (`info`, `WARNING`, ...) to its number."""
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {name!r}")
    return level


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure logging for the Shipwright application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.)
        json_format: If True, use JSON structured output. Otherwise human-readable.
        stream: Where records go; stderr by default.
    """
    root = logging.getLogger("shipwright")
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else ContextFormatter())
    root.addHandler(handler)

    transport_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
