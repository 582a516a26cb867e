"""
GuildWatch structured logging
=============================

Records are put on a bounded queue by the emitting task and written by a
``QueueListener`` thread, so request handlers and sync jobs never block on
stream or file I/O.

Every record carries the context bound with ``LogContext`` or
``set_log_context`` at the moment it was emitted:

    request_id, route, user_id, guild_id, component, operation

Fields passed through ``logger.info("...", extra={...})`` are kept as well.

Output
------
- stdout: JSON in production (or with LOG_JSON=true), one-line text otherwise
- ``Config.LOGS_DIR/guildwatch.json.log``: JSON, rotated at UTC midnight,
  one backup kept

The stack is configured on import; ``shutdown_logging`` flushes the queue and
is called once by the process entrypoint.
"""

from __future__ import annotations

import copy
import json
import logging
import queue
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from typing import Any, Dict, List, Optional

from guildwatch.core.config.config import Config

CONTEXT_FIELDS = (
    "request_id",
    "route",
    "user_id",
    "guild_id",
    "component",
    "operation",
)
UNSET = "-"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "guildwatch.json.log"
QUEUE_SIZE = 10_000

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "sqlalchemy.engine",
    "aiosqlite",
    "asyncio",
)

# Attributes present on every LogRecord; anything else arrived via ``extra``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_context: ContextVar[Dict[str, Any]] = ContextVar("guildwatch_log_context", default={})
_listener: Optional[QueueListener] = None


# ============================================================================
# Record enrichment and formatting
# ============================================================================


class ContextFilter(logging.Filter):
    """Stamp the bound context onto the record; explicit ``extra`` wins."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        bound = _context.get()
        for name in CONTEXT_FIELDS:
            if name not in record.__dict__:
                setattr(record, name, bound.get(name, UNSET))
        for key, value in bound.items():
            if key not in record.__dict__:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, UNSET)
            if value not in (None, UNSET):
                entry[name] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False, default=str)


class _DroppingQueueHandler(QueueHandler):
    """Never blocks the caller: a full queue drops the record."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Resolve message and traceback here; the formatters run on the
        # listener thread and get the rendered text.
        record = copy.copy(record)
        record.msg = record.getMessage()
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        record.exc_info = None
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            sys.stderr.write("guildwatch: log queue full, record dropped\n")


# ============================================================================
# Setup / teardown
# ============================================================================


def _level() -> int:
    level = logging.getLevelName(str(Config.LOG_LEVEL).upper())
    return level if isinstance(level, int) else logging.INFO


def _use_json() -> bool:
    if Config.LOG_JSON is not None:
        return bool(Config.LOG_JSON)
    return Config.is_production()


def _handlers(level: int) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        JSONFormatter() if _use_json() else logging.Formatter(TEXT_FORMAT, DATE_FORMAT)
    )

    Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    daily = TimedRotatingFileHandler(
        filename=str(Config.LOGS_DIR / LOG_FILE_NAME),
        when="midnight",
        backupCount=1,
        encoding="utf-8",
        utc=True,
    )
    daily.setFormatter(JSONFormatter())

    for handler in (console, daily):
        handler.setLevel(level)
    return [console, daily]


def setup_logging() -> None:
    """Install the queue-backed root handler. Idempotent."""
    global _listener

    if _listener is not None:
        return

    level = _level()
    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_SIZE)
    _listener = QueueListener(log_queue, *_handlers(level), respect_handler_level=True)
    _listener.start()

    handler = _DroppingQueueHandler(log_queue)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(level),
            "json": _use_json(),
            "logs_dir": str(Config.LOGS_DIR),
        },
    )


def shutdown_logging() -> None:
    """Drain the queue and detach the root handler."""
    global _listener

    if _listener is None:
        return

    listener, _listener = _listener, None
    listener.stop()
    for handler in listener.handlers:
        handler.close()

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, _DroppingQueueHandler):
            root.removeHandler(handler)


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind log fields for the duration of a block.

    Nested contexts inherit the outer fields; leaving the block restores
    what was bound before. Works as a sync and an async context manager.

        async with LogContext(request_id=rid, route="POST /api/guild/sync-all"):
            ...
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = {key: value for key, value in fields.items() if value is not None}
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _context.set({**_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Add fields to the current context (until the enclosing LogContext exits)."""
    _context.set(
        {**_context.get(), **{key: value for key, value in fields.items() if value is not None}}
    )


def current_log_context() -> Dict[str, Any]:
    return dict(_context.get())


setup_logging()
