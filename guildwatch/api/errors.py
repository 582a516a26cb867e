"""
Exception handlers for the HTTP API.

Every error leaves the API in one envelope:

    {"error": <message>, "code": <error_code>, "details": [...]}

Domain exceptions carry their own caller-facing message and map to a status
by type. Integrity violations that escape the services become 400 conflicts.
Anything else is a logged 500 with a generic message.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from guildwatch.core.exceptions import GuildWatchInfrastructureException
from guildwatch.core.logging import get_logger
from guildwatch.modules.shared.exceptions import (
    AuthenticationError,
    ConflictError,
    GuildWatchDomainException,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)

logger = get_logger(__name__)

# Nothing in-tree raises RateLimitError yet; it keeps a 429 for throttled callers.
STATUS_BY_EXCEPTION: Tuple[Tuple[Type[GuildWatchDomainException], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (InvalidOperationError, 400),
    (ConflictError, 400),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (RateLimitError, 429),
)


def status_for(exc: GuildWatchDomainException) -> int:
    for exc_type, status in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status
    return 400


def error_envelope(
    message: str, code: str, details: Optional[List[Any]] = None
) -> Dict[str, Any]:
    return {"error": message, "code": code, "details": details or []}


def _validation_issues(exc: RequestValidationError) -> List[Dict[str, str]]:
    issues = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        issues.append(
            {
                "field": ".".join(location) or "body",
                "message": error.get("msg", "Invalid value"),
            }
        )
    return issues


async def handle_domain_exception(
    request: Request, exc: GuildWatchDomainException
) -> JSONResponse:
    status = status_for(exc)
    details = exc.issues if isinstance(exc, ValidationError) else []
    logger.info(
        f"Request rejected: {exc.message}",
        extra={
            "status": status,
            "error_code": exc.error_code,
            "path": request.url.path,
        },
    )

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(int(exc.retry_after) + 1)}

    return JSONResponse(
        status_code=status,
        content=error_envelope(exc.public_message, exc.error_code, details),
        headers=headers,
    )


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    issues = _validation_issues(exc)
    logger.info(
        "Request validation failed",
        extra={"path": request.url.path, "issues": issues},
    )
    return JSONResponse(
        status_code=400,
        content=error_envelope("Invalid request data", "VALIDATION_ERROR", issues),
    )


async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(
        "Unique constraint violation reached the API",
        extra={"path": request.url.path, "error": str(exc.orig)},
    )
    return JSONResponse(
        status_code=400,
        content=error_envelope("Resource already exists", "CONFLICT"),
    )


async def handle_infrastructure_exception(
    request: Request, exc: GuildWatchInfrastructureException
) -> JSONResponse:
    logger.error(
        f"Infrastructure failure: {exc}",
        extra={"path": request.url.path, "error_code": exc.error_code},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error_envelope("Internal server error", exc.error_code),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error_envelope("Internal server error", "INTERNAL_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GuildWatchDomainException, handle_domain_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(
        GuildWatchInfrastructureException, handle_infrastructure_exception
    )
    app.add_exception_handler(Exception, handle_unexpected_exception)
