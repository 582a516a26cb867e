"""
Common base for GuildWatch domain services.

A service receives an opened ``DatabaseService`` and a logger, opens its own
sessions/transactions through it, and signals failures with the domain
exceptions in ``guildwatch.modules.shared.exceptions``. HTTP status mapping
happens in ``guildwatch.api.errors``, never here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Type

from guildwatch.core.config.config import Config
from guildwatch.core.exceptions import ConfigurationError

from .exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from guildwatch.core.database.service import DatabaseService


class BaseService:
    def __init__(
        self,
        db: DatabaseService,
        logger: Logger,
        config: Type[Config] = Config,
    ) -> None:
        self.db = db
        self.log = logger
        self._config = config

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        ``Config.<key>``, or ``default`` when absent.

        Raises:
            ConfigurationError: ``required`` and the value is None
        """
        value = getattr(self._config, key, default)
        if value is None and required:
            raise ConfigurationError(key, f"{key} is not configured")
        return value

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(operation, extra={"operation": operation, **context})

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                **context,
            },
        )

    @staticmethod
    def validate_positive_int(value: int, name: str) -> None:
        # bool is an int subclass; True is not a valid id.
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(name, f"{name} must be a positive integer")

    @staticmethod
    def validate_length(value: Optional[str], name: str, min_len: int, max_len: int) -> str:
        """Return ``value`` stripped, or raise ValidationError if its length is out of range."""
        stripped = (value or "").strip()
        if len(stripped) < min_len or len(stripped) > max_len:
            raise ValidationError(
                name, f"{name} must be between {min_len} and {max_len} characters"
            )
        return stripped
