"""
Logging setup.

Every module does `logger = get_logger(__name__)` and may pass structured
extras:

    logger.info("[FETCHER] Fetched changelog", context={"url": url}, duration_ms=12.5)

Console output is human-readable; the rotating file can be plain text or
JSON lines (LOG_FORMAT). Secrets are masked before any handler formats them.
"""
import json
import logging
import re
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import pytz

from core.config import settings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_timezone(name: str):
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return pytz.utc


LOG_TZ = _resolve_timezone(settings.TIMEZONE)


class SensitiveDataFilter(logging.Filter):
    """Masks bot tokens and Supabase credentials in messages, args and context."""

    MASKS = [
        # Bot API URLs embed the token: .../bot123456:AA.../sendMessage
        (re.compile(r"(bot|TELEGRAM_TOKEN=)\d{6,}:[A-Za-z0-9_-]{20,}"), r"\1***MASKED***"),
        # Supabase service keys are JWTs
        (re.compile(r"(SUPABASE_KEY=)?eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_.-]{20,}"), r"\1***MASKED***"),
        (re.compile(r"https://[a-z0-9-]+\.supabase\.co"), "***SUPABASE_URL***"),
    ]

    @classmethod
    def mask(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        for pattern, replacement in cls.MASKS:
            value = pattern.sub(replacement, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.mask(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self.mask(arg) for arg in record.args)
        elif isinstance(record.args, dict):
            record.args = {k: self.mask(v) for k, v in record.args.items()}

        context = getattr(record, "context", None)
        if context:
            record.context = {k: self.mask(v) for k, v in context.items()}
        return True


class ConsoleFormatter(logging.Formatter):
    """Text formatter in LOG_TZ that appends context and duration extras."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=pytz.utc).astimezone(LOG_TZ)
        return dt.strftime(datefmt) if datefmt else dt.isoformat(timespec="milliseconds")

    def format(self, record):
        parts = [super().format(record)]

        context = getattr(record, "context", None)
        if context:
            parts.append(" ".join(f"{k}={v}" for k, v in context.items()))

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            parts.append(f"⏱️ {duration_ms:.2f}ms")

        return " | ".join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=pytz.utc)
            .astimezone(LOG_TZ)
            .isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 2)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Accepts `context=` and `duration_ms=` keyword arguments on every call."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["context"] = kwargs.pop("context", {})
        if "duration_ms" in kwargs:
            extra["duration_ms"] = kwargs.pop("duration_ms")
        return msg, kwargs


def _file_handler(log_file: str) -> RotatingFileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(FILE_TEXT_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_logger(
    name: str,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> StructuredLoggerAdapter:
    """
    Get a logger with console and (optionally) rotating file handlers.

    Handlers are attached once per logger name; later calls reuse them.
    An empty LOG_FILE disables the file handler.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        level = (log_level or settings.LOG_LEVEL).upper()
        logger.setLevel(getattr(logging, level, logging.INFO))

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO)
        console.setFormatter(ConsoleFormatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(console)

        log_file = settings.LOG_FILE if log_file is None else log_file
        if log_file:
            logger.addHandler(_file_handler(log_file))

        for handler in logger.handlers:
            handler.addFilter(SensitiveDataFilter())

        # Handlers are per logger; propagating would print everything twice
        logger.propagate = False

    return StructuredLoggerAdapter(logger, {})


def setup_logging(log_level: str = None, log_file: str = None) -> None:
    """Reset the root logger and give it the standard handlers."""
    logging.getLogger().handlers.clear()
    get_logger("root", log_level, log_file)
