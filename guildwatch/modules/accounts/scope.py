"""
Monitoring scope queries.

Resolve which guilds an account watches, through its active world
subscriptions and their active guild configurations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from sqlalchemy import select

from guildwatch.database.models import (
    ConfigurationType,
    Guild,
    GuildConfiguration,
    WorldSubscription,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.database.models import User

FRIENDLY_TYPES = (ConfigurationType.MAIN, ConfigurationType.ALLY)


async def active_configurations(
    session: AsyncSession,
    user_id: int,
    types: Optional[Iterable[ConfigurationType]] = None,
) -> List[GuildConfiguration]:
    """Active configurations under the user's active world subscriptions."""
    stmt = (
        select(GuildConfiguration)
        .join(
            WorldSubscription,
            GuildConfiguration.world_subscription_id == WorldSubscription.id,
        )
        .where(
            WorldSubscription.user_id == user_id,
            WorldSubscription.is_active.is_(True),
            GuildConfiguration.is_active.is_(True),
        )
        .order_by(GuildConfiguration.type, GuildConfiguration.priority)
    )
    if types is not None:
        stmt = stmt.where(GuildConfiguration.type.in_(list(types)))

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def configured_guilds(session: AsyncSession, user_id: int) -> List[Guild]:
    """Distinct guilds behind the user's active configurations, in config order."""
    configs = await active_configurations(session, user_id)
    seen: Dict[int, Guild] = {}
    for config in configs:
        seen.setdefault(config.guild_id, config.guild)
    return list(seen.values())


async def guild_ids_by_type(
    session: AsyncSession,
    user_id: int,
    types: Iterable[ConfigurationType],
) -> List[int]:
    configs = await active_configurations(session, user_id, types)
    return sorted({config.guild_id for config in configs})


async def monitored_guild_ids(session: AsyncSession, user: User) -> List[int]:
    """
    Guilds whose members the user protects.

    MAIN/ALLY configurations; falls back to the user's own guild when there
    are none.
    """
    guild_ids = await guild_ids_by_type(session, user.id, FRIENDLY_TYPES)
    if not guild_ids and user.guild_id is not None:
        guild_ids = [user.guild_id]
    return guild_ids


async def enemy_guild_ids(session: AsyncSession, user_id: int) -> List[int]:
    return await guild_ids_by_type(session, user_id, (ConfigurationType.ENEMY,))


async def active_worlds(session: AsyncSession, user_id: int) -> List[str]:
    result = await session.execute(
        select(WorldSubscription.world)
        .where(
            WorldSubscription.user_id == user_id,
            WorldSubscription.is_active.is_(True),
        )
        .order_by(WorldSubscription.world)
    )
    return list(result.scalars().all())
