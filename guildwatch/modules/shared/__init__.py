"""
Pieces every feature module builds on: domain exceptions, ``BaseService``,
``BaseRepository``, paging and keyed bulk upsert.

    from guildwatch.modules.shared import BaseRepository, BaseService, NotFoundError
"""

from .base_repository import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    BaseRepository,
    Page,
    UniqueKey,
    UpsertResult,
    bulk_upsert,
    normalize_paging,
)
from .base_service import BaseService
from .exceptions import (
    AuthenticationError,
    ConflictError,
    GuildWatchDomainException,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "BaseRepository",
    "Page",
    "UniqueKey",
    "UpsertResult",
    "bulk_upsert",
    "normalize_paging",
    "DEFAULT_PAGE_LIMIT",
    "MAX_PAGE_LIMIT",
    "GuildWatchDomainException",
    "NotFoundError",
    "ValidationError",
    "InvalidOperationError",
    "ConflictError",
    "AuthenticationError",
    "PermissionDeniedError",
    "RateLimitError",
]
