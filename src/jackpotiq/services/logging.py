"""Logging helpers shared by the authentication services."""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Optional, TextIO

__all__ = ["setup_logging", "JsonFormatter", "RedactingFilter"]

ROOT_LOGGER = "jackpotiq"

_BEARER_RE = re.compile(r"(Bearer\s+)[^\s\"',]+", re.IGNORECASE)


def _json_payload(record: logging.LogRecord) -> str:
    base = {
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    timestamp = getattr(record, "asctime", None)
    if timestamp:
        base["time"] = timestamp
    extra = getattr(record, "extra", None)
    if isinstance(extra, dict):
        base.update(extra)
    return json.dumps(base, ensure_ascii=False)


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - trivial wrapper
        return _json_payload(record)


class RedactingFilter(logging.Filter):
    """Mask bearer credentials that end up in a log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _BEARER_RE.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: Optional[str] = None, *, json_format: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """Configure the package logger with a single stream handler."""

    logger = logging.getLogger(ROOT_LOGGER)
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    logger.propagate = False

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(RedactingFilter())
    logger.addHandler(handler)
    return logger
