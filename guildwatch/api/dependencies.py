"""
FastAPI dependencies: service lookup, bearer-token session and role checks.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from guildwatch.core.logging import set_log_context
from guildwatch.database.models import User, UserRole
from guildwatch.modules.accounts.security import verify_token
from guildwatch.modules.shared.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
)

from .state import Services

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> User:
    token = credentials.credentials if credentials is not None else None
    user_id = verify_token(token)
    if user_id is None:
        raise AuthenticationError()

    user = await services.accounts.get_user(user_id)
    if user is None:
        raise AuthenticationError()

    set_log_context(user_id=user.id, guild_id=user.guild_id)
    return user


def require_role(*roles: UserRole) -> Callable[..., Awaitable[User]]:
    allowed = frozenset(roles)

    async def _require(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise PermissionDeniedError(
                "role_check",
                "Forbidden",
            )
        return user

    return _require


require_super_admin = require_role(UserRole.SUPER_ADMIN)
require_guild_admin = require_role(UserRole.GUILD_ADMIN)
