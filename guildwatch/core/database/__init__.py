"""
Database subsystem for GuildWatch.

Provides the async SQLAlchemy engine, session and transaction management,
and the retry policy for transient failures.

Also exports ORM base classes and mixins for model definitions.
"""

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
    utc_now,
)
from guildwatch.core.database.retry_policy import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from guildwatch.core.database.service import (
    DatabaseConfigSnapshot,
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "UTCDateTime",
    "str_enum",
    "utc_now",
    # Main service
    "DatabaseService",
    "DatabaseConfigSnapshot",
    # Retry
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
