"""Logging for the FileLink application.

All loggers live under the ``filelink`` namespace and share three handlers:

* the console (``RichHandler``), warnings and above
* ``app.log``, rotating JSON lines at the configured level
* ``events.log``, rotating JSON lines holding only ``log_event`` records

Every handler carries a ``SensitiveDataFilter``, so passwords, tokens,
one-time codes and e-mail addresses are redacted before a record is
formatted anywhere.
"""

import json
import logging
import re
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from .paths import LOGS_DIR

ROOT_LOGGER = "filelink"
REDACTED = "[REDACTED]"

APP_LOG_MAX_BYTES = 5_242_880
EVENT_LOG_MAX_BYTES = 2_048_000

# Mapping keys and record attributes whose values are always secret
SECRET_KEYS = frozenset(
    {
        "password",
        "share_link_password",
        "secret",
        "token",
        "api_token",
        "authorization",
        "otp",
        "otp_code",
        "cookie",
        "credential",
    }
)

_KEY_VALUE = re.compile(
    r"(?P<key>\b(?:share_link_)?password|\b(?:api_)?token|\bsecret|\botp(?:_code)?)"
    r"(?P<sep>[\"']?\s*[:=]\s*[\"']?)"
    r"(?P<value>[^\"'}\s,]+)",
    re.IGNORECASE,
)
_AUTH_HEADER = re.compile(
    r"(?P<prefix>authorization[\"']?\s*[:=]\s*[\"']?(?:token\s+)?)(?P<value>[^\"'}\s,]+)",
    re.IGNORECASE,
)
_EMAIL = re.compile(
    r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9])[A-Za-z0-9.-]*\.[A-Za-z]{2,}\b"
)


## Redaction


def redact(text: str) -> str:
    """Replace secret values in free text, keeping the key names."""

    if not isinstance(text, str) or not text:
        return text

    text = _KEY_VALUE.sub(lambda m: f"{m['key']}{m['sep']}{REDACTED}", text)
    text = _AUTH_HEADER.sub(lambda m: f"{m['prefix']}{REDACTED}", text)
    return _EMAIL.sub(r"\1***@\2***", text)


def redact_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with secret keys blanked, nested dicts included."""

    clean: Dict[str, Any] = {}

    for key, value in data.items():
        if str(key).lower() in SECRET_KEYS:
            clean[key] = REDACTED
        elif isinstance(value, dict):
            clean[key] = redact_mapping(value)
        elif isinstance(value, str):
            clean[key] = redact(value)
        else:
            clean[key] = value

    return clean


class SensitiveDataFilter(logging.Filter):
    """Redact a record in place before any handler formats it."""

    _STANDARD_ATTRS = frozenset({"msg", "args", "name", "levelname", "pathname", "module"})

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(redact(arg) if isinstance(arg, str) else arg for arg in record.args)

        for key, value in list(vars(record).items()):
            if key in self._STANDARD_ATTRS:
                continue
            if key.lower() in SECRET_KEYS:
                setattr(record, key, REDACTED)
            elif isinstance(value, dict):
                setattr(record, key, redact_mapping(value))

        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, carrying event type and context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        for attr in ("event_type", "context"):
            if hasattr(record, attr):
                entry[attr] = getattr(record, attr)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid logging level: {name}")
    return level


## Log Manager


class LogManager:
    """Owns the handlers attached to the application's root logger."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        logger_name: str = ROOT_LOGGER,
    ):
        self.log_dir = log_dir or LOGS_DIR
        self.root_logger = logging.getLogger(logger_name)
        self.root_logger.setLevel(logging.DEBUG)

        self.console_handler = RichHandler(
            show_time=True, show_path=False, markup=False, rich_tracebacks=True
        )
        self.console_handler.setLevel(logging.WARNING)
        self.console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

        self.app_handler = self._file_handler(
            "app.log", APP_LOG_MAX_BYTES, 5, _parse_level(log_level)
        )
        self.event_handler = self._file_handler(
            "events.log", EVENT_LOG_MAX_BYTES, 3, logging.INFO
        )
        self.event_handler.addFilter(lambda record: hasattr(record, "event_type"))

        redactor = SensitiveDataFilter()
        self.root_logger.handlers.clear()
        for handler in (self.console_handler, self.app_handler, self.event_handler):
            handler.addFilter(redactor)
            self.root_logger.addHandler(handler)

    def _file_handler(
        self, filename: str, max_bytes: int, backups: int, level: int
    ) -> RotatingFileHandler:
        from .errors import FileSystemError

        path = self.log_dir / filename
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
            )
        except OSError as e:
            raise FileSystemError(f"Cannot open log file {path}: {e.strerror}") from e

        handler.setLevel(level)
        handler.setFormatter(JSONFormatter())
        return handler

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        root = self.root_logger.name
        if not name:
            return self.root_logger
        if name == root or name.startswith(f"{root}."):
            return logging.getLogger(name)
        return logging.getLogger(f"{root}.{name}")

    def set_level(self, level: str) -> None:
        """Change the level of ``app.log`` at runtime."""
        self.app_handler.setLevel(_parse_level(level))

    def log_event(
        self, event_type: str, context: Optional[Dict[str, Any]] = None, level: str = "INFO"
    ) -> None:
        self.root_logger.log(
            _parse_level(level),
            f"Event: {event_type}",
            extra={"event_type": event_type, "context": dict(context or {})},
        )

    def close(self) -> None:
        for handler in (self.console_handler, self.app_handler, self.event_handler):
            self.root_logger.removeHandler(handler)
            handler.close()


## Call tracing


@contextmanager
def _traced(func):
    logger = logging.getLogger(f"{ROOT_LOGGER}.calls")
    name = f"{func.__module__}.{func.__qualname__}"
    started = time.perf_counter()
    logger.debug(f"-> {name}")

    try:
        yield
    except Exception as e:
        logger.debug(
            f"<- {name} raised {type(e).__name__} after {time.perf_counter() - started:.3f}s"
        )
        raise

    logger.debug(f"<- {name} ({time.perf_counter() - started:.3f}s)")


def log_call(func):
    """Trace entry, exit and duration of a call at DEBUG."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        with _traced(func):
            return func(*args, **kwargs)

    return wrapper


def async_log_call(func):
    """``log_call`` for coroutine functions."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        with _traced(func):
            return await func(*args, **kwargs)

    return wrapper


## Module-level manager

_log_manager: Optional[LogManager] = None


def init_logging(log_level: str = "INFO") -> LogManager:
    """Create the process-wide LogManager on first use and return it."""

    global _log_manager

    if _log_manager is None:
        _log_manager = LogManager(log_level)

    return _log_manager


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``filelink`` namespace; ``__name__`` works as-is."""

    return init_logging().get_logger(name)


def log_event(event_type: str, context: Optional[Dict[str, Any]] = None, **extra) -> None:
    """Record a lifecycle event, e.g. ``log_event("file_deleted", {"file_id": ...})``."""

    init_logging().log_event(event_type, {**(context or {}), **extra})
