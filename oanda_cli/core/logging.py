"""Structured JSON logging on stderr, keeping stdout free for feed records."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message"}


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields land under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        context = _context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, separators=(",", ":"), default=str)


class _StderrHandler(logging.StreamHandler):
    def __init__(self) -> None:
        super().__init__(stream=sys.stderr)
        self.setFormatter(JsonFormatter())


def configure_logging(level: str = "INFO") -> None:
    """Route the root logger to stderr as JSON; repeat calls only change the level."""

    root = logging.getLogger()
    if not any(isinstance(handler, _StderrHandler) for handler in root.handlers):
        root.handlers.clear()
        root.addHandler(_StderrHandler())
    root.setLevel(level.upper())
