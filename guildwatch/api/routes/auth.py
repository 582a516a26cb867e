from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from guildwatch.api.dependencies import get_current_user, get_services
from guildwatch.api.schemas import LoginRequest, RegisterRequest
from guildwatch.api.state import Services
from guildwatch.database.models import User
from guildwatch.modules.accounts import user_to_dict

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register")
async def register(
    payload: RegisterRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.accounts.register(
        payload.character_name,
        payload.world,
        payload.guild_name,
        payload.password,
    )


@router.post("/login")
async def login(
    payload: LoginRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.accounts.login(
        payload.character_name, payload.world, payload.password
    )


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return user_to_dict(user)
