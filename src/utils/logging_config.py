"""Logging configuration for the TWAP sell bot."""

from __future__ import annotations

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

NOISY_LOGGERS = ("aiohttp", "urllib3", "sqlalchemy.engine")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with context and ``extra=`` fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )
        return json.dumps(entry, default=str)


class SanitizingFormatter(logging.Formatter):
    """Plain formatter that masks credentials, e.g. keys embedded in feed URLs."""

    SENSITIVE_KEYS = ("api_key", "apikey", "token", "password", "secret", "authorization")
    _PATTERN = re.compile(
        r"(?P<key>" + "|".join(SENSITIVE_KEYS) + r")['\"]?\s*[:=]\s*['\"]?[\w\-.]+",
        re.IGNORECASE,
    )

    def format(self, record: logging.LogRecord) -> str:
        masked = logging.makeLogRecord(record.__dict__)
        masked.msg = self._PATTERN.sub(
            lambda m: f"{m.group('key')}=[REDACTED]", masked.getMessage()
        )
        masked.args = ()
        return super().format(masked)


def _build_formatter(structured: bool, sanitize: bool) -> logging.Formatter:
    if structured:
        return StructuredFormatter()
    if sanitize:
        return SanitizingFormatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT)
    return logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT)


def setup_logging(
    level: str = "INFO",
    *,
    structured: bool = False,
    sanitize: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Replace the root handlers with a stdout handler and an optional file.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines instead of plain text
        sanitize: Mask credentials in plain-text output
        log_file: Optional path that also receives every record
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = _build_formatter(structured, sanitize)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as exc:
            root.warning("Failed to set up file logging to %s: %s", log_file, exc)
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """
    Stamp fields onto every record created inside the block.

    Example:
        with LogContext(strategy="sell_twap", instance_id="xlm-usdc"):
            LOGGER.info("tick")  # record carries strategy and instance_id
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._previous = logging.getLogRecordFactory()

    def __enter__(self) -> "LogContext":
        self._previous = previous = logging.getLogRecordFactory()
        fields = self.fields

        def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = previous(*args, **kwargs)
            record.__dict__.update(fields)
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, *exc: Any) -> None:
        logging.setLogRecordFactory(self._previous)
