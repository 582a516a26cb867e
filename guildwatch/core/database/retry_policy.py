"""
Retry policy for database transactions.

``DatabaseRetryPolicy.execute`` re-runs a zero-argument coroutine factory
when it fails with a transient driver error, sleeping with capped exponential
backoff between attempts.

What is retried
---------------
- ``OperationalError`` / ``DBAPIError``: dropped connections, "database is
  locked", serialization failures
- never ``IntegrityError``: a unique or foreign-key violation fails the same
  way every time. It subclasses ``DBAPIError``, so it is checked first
- never anything else (domain errors, programming errors)

Backoff before attempt ``n + 1``::

    min(initial * 2 ** (n - 1), maximum) + uniform_int(0, jitter)   [ms]

The callable must open its own transaction. ``DatabaseService.run_in_transaction``
builds such a callable; do not retry work inside a transaction that is
already open.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from guildwatch.core.config.config import Config
from guildwatch.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (OperationalError, DBAPIError)
PERMANENT_ERRORS: Tuple[Type[BaseException], ...] = (IntegrityError,)


@dataclass(frozen=True)
class DatabaseRetryConfig:
    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int

    @classmethod
    def from_config(cls) -> DatabaseRetryConfig:
        return cls(
            max_attempts=Config.DATABASE_RETRY_MAX_ATTEMPTS,
            initial_backoff_ms=Config.DATABASE_RETRY_INITIAL_BACKOFF_MS,
            max_backoff_ms=Config.DATABASE_RETRY_MAX_BACKOFF_MS,
            jitter_ms=Config.DATABASE_RETRY_JITTER_MS,
        )


def is_retriable(exc: BaseException) -> bool:
    if isinstance(exc, PERMANENT_ERRORS):
        return False
    return isinstance(exc, TRANSIENT_ERRORS)


class DatabaseRetryPolicy:
    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @classmethod
    def from_config(cls) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config())

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _compute_backoff_ms(self, attempt: int) -> int:
        """Delay after the ``attempt``-th failure (1-indexed)."""
        delay = self._config.initial_backoff_ms * 2 ** max(attempt - 1, 0)
        delay = min(delay, self._config.max_backoff_ms)
        if self._config.jitter_ms > 0:
            delay += random.randint(0, self._config.jitter_ms)
        return delay

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Await ``operation()`` until it succeeds or stops being retriable.

        Raises:
            The last exception, unchanged, once attempts are exhausted or on
            the first non-retriable failure.
        """
        log_fields = {**(context or {}), "operation": operation_name}
        max_attempts = self._config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not is_retriable(exc):
                    raise

                if attempt >= max_attempts:
                    logger.error(
                        f"{operation_name} failed after {attempt} attempts",
                        extra={**log_fields, "attempt": attempt, "error_type": type(exc).__name__},
                        exc_info=True,
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.warning(
                    f"{operation_name} hit a transient database error; retrying",
                    extra={
                        **log_fields,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "backoff_ms": backoff_ms,
                    },
                )
                await asyncio.sleep(backoff_ms / 1000.0)

        raise RuntimeError(f"{operation_name}: max_attempts must be at least 1")
