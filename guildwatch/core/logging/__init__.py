"""Structured, queue-backed logging with per-request context."""

from guildwatch.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    current_log_context,
    get_logger,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "ContextFilter",
    "JSONFormatter",
    "LogContext",
    "current_log_context",
    "get_logger",
    "set_log_context",
    "setup_logging",
    "shutdown_logging",
]
