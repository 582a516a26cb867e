"""
MonitoringService - world subscriptions and guild configurations
================================================================

An account monitors worlds (WorldSubscription) and, per world, a capped set
of guilds tagged MAIN, ALLY or ENEMY (GuildConfiguration). These rows drive
roster sync scope and the friend/enemy split used by threat scoring.

Rules:
- A world must exist on TibiaData before it can be subscribed
- Active world subscriptions stay below the plan's world limit (1 without
  a subscription)
- Configurations per world stay below ``max_guilds``
- Removing the last configuration of a guild removes its tracked players
  and the guild itself, unless it is some account's home guild
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

from sqlalchemy import func, select

from guildwatch.database.models import (
    DEFAULT_MAX_GUILDS,
    ConfigurationType,
    Guild,
    GuildConfiguration,
    GuildType,
    Player,
    Subscription,
    User,
    WorldSubscription,
)
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.modules.tibiadata.client import TibiaDataClient

DEFAULT_WORLD_LIMIT = 1


def guild_type_for(config_type: ConfigurationType) -> GuildType:
    """Type given to a guild created through a configuration."""
    if config_type == ConfigurationType.ENEMY:
        return GuildType.ENEMY
    if config_type == ConfigurationType.ALLY:
        return GuildType.ALLY
    return GuildType.MAIN


def _world_subscription_row(ws: WorldSubscription, guild_count: int) -> Dict[str, Any]:
    return {
        "id": ws.id,
        "world": ws.world,
        "isActive": ws.is_active,
        "maxGuilds": ws.max_guilds,
        "guildCount": guild_count,
        "createdAt": ws.created_at.isoformat(),
    }


def _configuration_row(config: GuildConfiguration) -> Dict[str, Any]:
    return {
        "id": config.id,
        "worldSubscriptionId": config.world_subscription_id,
        "world": config.world_subscription.world,
        "guildId": config.guild_id,
        "guildName": config.guild.name,
        "type": config.type.value,
        "priority": config.priority,
        "isActive": config.is_active,
        "lastSync": (
            config.guild.last_sync_at.isoformat()
            if config.guild.last_sync_at
            else None
        ),
    }


class MonitoringService(BaseService):
    def __init__(
        self,
        db: DatabaseService,
        client: TibiaDataClient,
        logger: Logger,
    ) -> None:
        super().__init__(db, logger)
        self.client = client
        self._world_repo = BaseRepository[WorldSubscription](WorldSubscription, self.log)
        self._config_repo = BaseRepository[GuildConfiguration](
            GuildConfiguration, self.log
        )
        self._guild_repo = BaseRepository[Guild](Guild, self.log)
        self._player_repo = BaseRepository[Player](Player, self.log)
        self._subscription_repo = BaseRepository[Subscription](Subscription, self.log)
        self._user_repo = BaseRepository[User](User, self.log)

    # -------------------------------------------------------------------------
    # World subscriptions
    # -------------------------------------------------------------------------

    async def list_world_subscriptions(self, user: User) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            subscriptions = await self._world_repo.find_many_where(
                session,
                WorldSubscription.user_id == user.id,
                order_by=[WorldSubscription.created_at.desc(), WorldSubscription.id.desc()],
            )
            counts_result = await session.execute(
                select(GuildConfiguration.world_subscription_id, func.count())
                .where(
                    GuildConfiguration.world_subscription_id.in_(
                        [ws.id for ws in subscriptions]
                    ),
                    GuildConfiguration.is_active.is_(True),
                )
                .group_by(GuildConfiguration.world_subscription_id)
            )
            counts = dict(counts_result.all())
            return [_world_subscription_row(ws, counts.get(ws.id, 0)) for ws in subscriptions]

    async def create_world_subscription(self, user: User, world: str) -> Dict[str, Any]:
        """
        Subscribe the account to a world.

        Raises:
            ValidationError: Empty or unknown world
            ConflictError: World already subscribed
            PermissionDeniedError: World limit reached
        """
        world = self.validate_length(world, "world", 1, 30)
        if not await self.client.validate_world(world):
            raise ValidationError("world", "Invalid world")

        async def _create(session: AsyncSession) -> Dict[str, Any]:
            if await self._world_repo.exists(
                session,
                WorldSubscription.user_id == user.id,
                WorldSubscription.world == world,
            ):
                raise ConflictError("WorldSubscription", "World already exists")

            subscription = await self._subscription_repo.find_one_where(
                session, Subscription.user_id == user.id
            )
            world_limit = (
                subscription.world_limit if subscription is not None else DEFAULT_WORLD_LIMIT
            ) or DEFAULT_WORLD_LIMIT
            active = await self._world_repo.count(
                session,
                WorldSubscription.user_id == user.id,
                WorldSubscription.is_active.is_(True),
            )
            if active >= world_limit:
                raise PermissionDeniedError(
                    "create_world_subscription", "World limit reached"
                )

            ws = self._world_repo.add(
                session,
                WorldSubscription(
                    user_id=user.id,
                    world=world,
                    is_active=True,
                    max_guilds=DEFAULT_MAX_GUILDS,
                ),
            )
            await session.flush()
            return _world_subscription_row(ws, 0)

        row = await self.db.run_in_transaction(
            _create,
            operation_name="monitoring.create_world_subscription",
            context={"user_id": user.id, "world": world},
        )
        self.log_operation(
            "monitoring.create_world_subscription", user_id=user.id, world=world
        )
        return row

    async def set_world_subscription_active(
        self, user: User, world_subscription_id: int, is_active: bool
    ) -> Dict[str, Any]:
        async def _update(session: AsyncSession) -> Dict[str, Any]:
            ws = await self._world_repo.find_one_where(
                session,
                WorldSubscription.id == world_subscription_id,
                WorldSubscription.user_id == user.id,
                for_update=True,
            )
            if ws is None:
                raise NotFoundError("World subscription", world_subscription_id)
            ws.is_active = is_active
            guild_count = await self._config_repo.count(
                session,
                GuildConfiguration.world_subscription_id == ws.id,
                GuildConfiguration.is_active.is_(True),
            )
            return _world_subscription_row(ws, guild_count)

        return await self.db.run_in_transaction(
            _update,
            operation_name="monitoring.set_world_subscription_active",
            context={"user_id": user.id, "world_subscription_id": world_subscription_id},
        )

    # -------------------------------------------------------------------------
    # Guild configurations
    # -------------------------------------------------------------------------

    async def list_guild_configurations(self, user: User) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(GuildConfiguration)
                .join(
                    WorldSubscription,
                    GuildConfiguration.world_subscription_id == WorldSubscription.id,
                )
                .where(WorldSubscription.user_id == user.id)
                .order_by(
                    GuildConfiguration.type,
                    GuildConfiguration.priority,
                    GuildConfiguration.id,
                )
            )
            return [_configuration_row(config) for config in result.scalars().all()]

    async def create_guild_configuration(
        self,
        user: User,
        world_subscription_id: int,
        guild_name: str,
        config_type: ConfigurationType,
    ) -> Dict[str, Any]:
        """
        Add a guild to one of the account's worlds.

        The guild row is found by (name, world) or created with a type
        derived from ``config_type``.

        Raises:
            NotFoundError: World subscription missing or not owned
            InvalidOperationError: Guild limit reached for the world
            ConflictError: Guild already configured for the world
        """
        self.validate_positive_int(world_subscription_id, "worldSubscriptionId")
        guild_name = self.validate_length(guild_name, "guildName", 1, 50)

        async def _create(session: AsyncSession) -> Dict[str, Any]:
            ws = await self._world_repo.find_one_where(
                session,
                WorldSubscription.id == world_subscription_id,
                WorldSubscription.user_id == user.id,
                for_update=True,
            )
            if ws is None:
                raise NotFoundError("World subscription", world_subscription_id)

            existing = await self._config_repo.count(
                session, GuildConfiguration.world_subscription_id == ws.id
            )
            if existing >= ws.max_guilds:
                raise InvalidOperationError(
                    "create_guild_configuration",
                    f"Guild limit reached for this world ({ws.max_guilds})",
                )

            guild = await self._guild_repo.find_one_where(
                session, Guild.name == guild_name, Guild.world == ws.world
            )
            if guild is None:
                guild = self._guild_repo.add(
                    session,
                    Guild(
                        name=guild_name,
                        world=ws.world,
                        type=guild_type_for(config_type),
                        is_active=True,
                    ),
                )
                await session.flush()
            elif await self._config_repo.exists(
                session,
                GuildConfiguration.world_subscription_id == ws.id,
                GuildConfiguration.guild_id == guild.id,
            ):
                raise ConflictError(
                    "GuildConfiguration", "Guild already configured for this world"
                )

            config = self._config_repo.add(
                session,
                GuildConfiguration(
                    world_subscription_id=ws.id,
                    guild_id=guild.id,
                    type=config_type,
                    priority=existing + 1,
                    is_active=True,
                ),
            )
            await session.flush()
            await session.refresh(config, attribute_names=["guild", "world_subscription"])
            return _configuration_row(config)

        row = await self.db.run_in_transaction(
            _create,
            operation_name="monitoring.create_guild_configuration",
            context={"user_id": user.id, "world_subscription_id": world_subscription_id},
        )
        self.log_operation(
            "monitoring.create_guild_configuration",
            user_id=user.id,
            guild_id=row["guildId"],
            type=config_type.value,
        )
        return row

    async def _owned_configuration(
        self, session: AsyncSession, user: User, configuration_id: int
    ) -> GuildConfiguration:
        result = await session.execute(
            select(GuildConfiguration)
            .join(
                WorldSubscription,
                GuildConfiguration.world_subscription_id == WorldSubscription.id,
            )
            .where(
                GuildConfiguration.id == configuration_id,
                WorldSubscription.user_id == user.id,
            )
        )
        config = result.scalar_one_or_none()
        if config is None:
            raise NotFoundError("Guild configuration", configuration_id)
        return config

    async def set_configuration_active(
        self, user: User, configuration_id: int, is_active: bool
    ) -> Dict[str, Any]:
        async def _update(session: AsyncSession) -> Dict[str, Any]:
            config = await self._owned_configuration(session, user, configuration_id)
            config.is_active = is_active
            return _configuration_row(config)

        return await self.db.run_in_transaction(
            _update,
            operation_name="monitoring.set_configuration_active",
            context={"user_id": user.id, "configuration_id": configuration_id},
        )

    async def delete_guild_configuration(
        self, user: User, configuration_id: int
    ) -> Dict[str, Any]:
        """
        Remove a configuration; drop the guild once nothing references it.

        Raises:
            NotFoundError: Configuration missing or not owned
        """

        async def _delete(session: AsyncSession) -> Dict[str, Any]:
            config = await self._owned_configuration(session, user, configuration_id)
            guild_id, guild_name = config.guild_id, config.guild.name
            await self._config_repo.delete(session, config)
            await session.flush()

            guild_removed = False
            players_removed = 0
            still_configured = await self._config_repo.exists(
                session, GuildConfiguration.guild_id == guild_id
            )
            home_guild = await self._user_repo.exists(session, User.guild_id == guild_id)
            if not still_configured and not home_guild:
                players_removed = await self._player_repo.delete_where(
                    session, Player.guild_id == guild_id
                )
                await self._guild_repo.delete_where(session, Guild.id == guild_id)
                guild_removed = True

            return {
                "success": True,
                "message": f"Guild configuration for {guild_name} deleted successfully",
                "guildRemoved": guild_removed,
                "playersRemoved": players_removed,
            }

        result = await self.db.run_in_transaction(
            _delete,
            operation_name="monitoring.delete_guild_configuration",
            context={"user_id": user.id, "configuration_id": configuration_id},
        )
        self.log_operation(
            "monitoring.delete_guild_configuration",
            user_id=user.id,
            configuration_id=configuration_id,
            guild_removed=result["guildRemoved"],
            players_removed=result["playersRemoved"],
        )
        return result
