from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from guildwatch.api.dependencies import get_current_user, get_services
from guildwatch.api.state import Services
from guildwatch.database.models import User

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
async def stats(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.dashboard.stats(user)


@router.get("/online-players")
async def online_players(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.online_players(user)


@router.get("/recent-deaths")
async def recent_deaths(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.recent_deaths(user)
