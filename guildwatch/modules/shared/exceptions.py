"""
Domain exceptions for GuildWatch.

Services raise these for rule violations, missing entities and access
failures. Each carries two texts:

- ``message``: what went wrong, with identifiers; goes to the log
- ``public_message``: what the API caller sees in ``{"error": ...}``

plus an ``error_code`` that becomes ``{"code": ...}``. The HTTP status is
chosen by type in ``guildwatch.api.errors``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GuildWatchDomainException(Exception):
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        public_message: Optional[str] = None,
    ) -> None:
        self.message = message
        self.public_message = public_message or message
        self.details: Dict[str, Any] = details or {}
        self.error_code = error_code or "DOMAIN_ERROR"
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class NotFoundError(GuildWatchDomainException):
    """
    A requested entity does not exist, or is not visible to the caller.

    Args:
        resource_type: "Guild", "Guild roster", "Verification", ...
        identifier: Id or name of the missing entity; logged, never shown
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            public_message=f"{resource_type} not found",
        )


class ValidationError(GuildWatchDomainException):
    """Input failed a domain check. ``issues`` feeds the envelope's details."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field},
            error_code="VALIDATION_ERROR",
            public_message=message,
        )

    @property
    def issues(self) -> List[Dict[str, str]]:
        return [{"field": self.field, "message": self.validation_message}]


class InvalidOperationError(GuildWatchDomainException):
    """
    The action is not allowed in the current state.

        >>> raise InvalidOperationError("approve_payment", "Verification already processed")
    """

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action},
            error_code=f"INVALID_{action.upper()}",
            public_message=reason,
        )


class ConflictError(GuildWatchDomainException):
    """A write would duplicate a unique entity."""

    def __init__(self, resource: str, reason: str) -> None:
        self.resource = resource
        self.reason = reason
        super().__init__(
            f"Conflict on {resource}: {reason}",
            details={"resource": resource},
            error_code="CONFLICT",
            public_message=reason,
        )


class AuthenticationError(GuildWatchDomainException):
    def __init__(self, reason: str = "Unauthorized") -> None:
        self.reason = reason
        super().__init__(
            f"Authentication failed: {reason}",
            error_code="UNAUTHORIZED",
            public_message=reason,
        )


class PermissionDeniedError(GuildWatchDomainException):
    """The caller is authenticated but lacks the role or ownership required."""

    def __init__(self, action: str, reason: str = "Forbidden") -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Permission denied for '{action}': {reason}",
            details={"action": action},
            error_code="FORBIDDEN",
            public_message=reason,
        )


class RateLimitError(GuildWatchDomainException):
    """
    The caller must wait before repeating the operation.

    Args:
        operation: Name of the limited operation
        retry_after: Seconds to wait; sent back as ``Retry-After``
    """

    def __init__(self, operation: str, retry_after: float) -> None:
        self.operation = operation
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {operation}: retry after {retry_after:.1f}s",
            details={"operation": operation, "retry_after": retry_after},
            error_code="RATE_LIMIT_EXCEEDED",
            public_message="Too many requests",
        )
