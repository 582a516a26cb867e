"""
Infrastructure exceptions.

Engineering failures (configuration, the TibiaData upstream) as opposed to
the caller-facing rule violations in ``guildwatch.modules.shared.exceptions``.
The API answers any of these that escape a service with a generic 500.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GuildWatchInfrastructureException(Exception):
    """
    Base for infrastructure errors.

    Args:
        message: Log-facing description
        details: Structured context for the log record
        error_code: Stable identifier, also used as the API error code
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code = error_code or "INTERNAL_ERROR"
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | {self.details}"


class ConfigurationError(GuildWatchInfrastructureException):
    """A required configuration key is missing or unusable."""

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key},
            error_code="CONFIG_ERROR",
        )


class ExternalServiceError(GuildWatchInfrastructureException):
    """
    A TibiaData request failed.

    Raised and caught inside the client; its public methods turn it into a
    ``None`` / ``False`` / ``[]`` result.

    Args:
        service: Upstream name, for logs
        endpoint: Requested path
        reason: Short failure description
        status_code: HTTP or ``information.status.http_code``, when known
    """

    def __init__(
        self,
        service: str,
        endpoint: str,
        reason: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.service = service
        self.endpoint = endpoint
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            f"{service} request to {endpoint} failed: {reason}",
            details={"endpoint": endpoint, "status_code": status_code},
            error_code="EXTERNAL_SERVICE_ERROR",
        )
