"""Structured JSON logging.

One JSON object per line on stdout. Ids passed through ``log_context`` are
rendered under ``context`` so a single user's, post's or chat's activity can
be filtered out of the stream.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from foodfriends.config import Settings, get_settings

_CTX_PREFIX = "ctx_"

# Firestore SDK, its transports and asyncio are chatty at DEBUG
_QUIET_LOGGERS = ("google", "grpc", "urllib3", "asyncio")


def log_context(**fields: Any) -> dict[str, Any]:
    """``extra=`` mapping for structured fields, e.g. ``log_context(user=uid)``."""
    return {f"{_CTX_PREFIX}{key}": value for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        context = {
            key[len(_CTX_PREFIX):]: value
            for key, value in record.__dict__.items()
            if key.startswith(_CTX_PREFIX)
        }
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


def setup_logging(level: str | None = None, settings: Settings | None = None) -> None:
    """Send JSON logs to stdout. Later calls are no-ops once a handler exists.

    ``level`` defaults to the log level of the active ``APP_ENV`` profile.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level = level or (settings or get_settings()).log_level
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
