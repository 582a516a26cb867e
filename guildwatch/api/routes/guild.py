"""
/api/guild: roster sync, enemies, death import and death lists, members,
online monitoring and monitoring scope.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from guildwatch.api.dependencies import (
    get_current_user,
    get_services,
    require_guild_admin,
)
from guildwatch.api.schemas import (
    ActiveToggle,
    GuildConfigurationCreate,
    GuildIdRequest,
    UpdatePasswordRequest,
    WorldSubscriptionCreate,
)
from guildwatch.api.state import Services
from guildwatch.database.models import User
from guildwatch.modules.shared.base_repository import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter(prefix="/api/guild", tags=["guild"])


# Tracking


@router.get("/enemies")
async def list_enemies(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.threat.list_enemies(user)


@router.post("/sync-players")
async def sync_players(
    payload: GuildIdRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    result = await services.roster.sync_guild(user, payload.guild_id)
    return result.to_dict()


@router.post("/sync-all")
async def sync_all(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.roster.sync_all(user)


@router.post("/sync-deaths")
async def sync_deaths(
    payload: GuildIdRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.deaths.sync_guild_deaths(user, payload.guild_id)


@router.get("/members")
async def list_members(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.dashboard.list_members(user, page=page, limit=limit)


@router.get("/death-stats")
async def death_stats(
    range: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.dashboard.death_stats(user, range)


@router.get("/deaths")
async def list_deaths(
    range: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.deaths(user, range)


@router.get("/my-deaths")
async def my_deaths(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.my_deaths(user)


@router.get("/member-stats")
async def member_stats(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.dashboard.member_stats(user)


@router.get("/online-monitoring")
async def online_monitoring(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.online_monitoring(user)


# TibiaData lookups


@router.get("/validate-world")
async def validate_world(
    world: str = Query(..., min_length=1, max_length=30),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return {"valid": await services.tibiadata.validate_world(world.strip())}


@router.get("/search-guilds")
async def search_guilds(
    world: str = Query(..., min_length=1, max_length=30),
    query: str = Query(..., min_length=2, max_length=50),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    guilds = await services.tibiadata.search_guilds(world.strip(), query.strip())
    return [guild.to_dict() for guild in guilds]


@router.post("/update-password")
async def update_password(
    payload: UpdatePasswordRequest,
    user: User = Depends(require_guild_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.accounts.update_guild_password(
        user, payload.guild_id, payload.password
    )


# Monitoring scope


@router.get("/world-subscriptions")
async def list_world_subscriptions(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.monitoring.list_world_subscriptions(user)


@router.post("/world-subscriptions")
async def create_world_subscription(
    payload: WorldSubscriptionCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.monitoring.create_world_subscription(user, payload.world)


@router.patch("/world-subscriptions/{world_subscription_id}")
async def update_world_subscription(
    world_subscription_id: int,
    payload: ActiveToggle,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.monitoring.set_world_subscription_active(
        user, world_subscription_id, payload.is_active
    )


@router.get("/guild-configurations")
async def list_guild_configurations(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.monitoring.list_guild_configurations(user)


@router.post("/guild-configurations")
async def create_guild_configuration(
    payload: GuildConfigurationCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.monitoring.create_guild_configuration(
        user, payload.world_subscription_id, payload.guild_name, payload.type
    )


@router.patch("/guild-configurations/{configuration_id}")
async def update_guild_configuration(
    configuration_id: int,
    payload: ActiveToggle,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.monitoring.set_configuration_active(
        user, configuration_id, payload.is_active
    )


@router.delete("/guild-configurations/{configuration_id}")
async def delete_guild_configuration(
    configuration_id: int,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.monitoring.delete_guild_configuration(user, configuration_id)
