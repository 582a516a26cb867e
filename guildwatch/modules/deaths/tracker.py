"""
DeathTrackerService - on-demand death import
============================================

Pulls each guild member's recent deaths from TibiaData and appends the ones
newer than the latest death already stored for that player.

A death is PVP when any killer is a player acting without a summon;
otherwise PVE. Deaths are never updated once written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import select

from guildwatch.database.models import Death, DeathType, Guild, Player, PlayerType
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.database.models import User
    from guildwatch.modules.tibiadata.client import TibiaDataClient
    from guildwatch.modules.tibiadata.models import CharacterDeath


def classify_death(death: CharacterDeath) -> DeathType:
    return DeathType.PVP if death.is_pvp else DeathType.PVE


class DeathTrackerService(BaseService):
    def __init__(
        self,
        db: DatabaseService,
        client: TibiaDataClient,
        logger: Logger,
    ) -> None:
        super().__init__(db, logger)
        self.client = client
        self._guild_repo = BaseRepository[Guild](Guild, self.log)
        self._player_repo = BaseRepository[Player](Player, self.log)
        self._death_repo = BaseRepository[Death](Death, self.log)

    async def sync_guild_deaths(self, user: User, guild_id: int) -> Dict[str, Any]:
        """
        Import new deaths for every GUILD_MEMBER of ``guild_id``.

        Returns:
            {"processedPlayers": players whose profile loaded,
             "newDeaths": rows appended}

        Raises:
            NotFoundError: Guild not stored
        """
        self.validate_positive_int(guild_id, "guildId")

        async with self.db.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            members = [
                (player.id, player.name)
                for player in await self._player_repo.find_many_where(
                    session,
                    Player.guild_id == guild_id,
                    Player.type == PlayerType.GUILD_MEMBER,
                    order_by=[Player.name],
                )
            ]

        self.log_operation(
            "deaths.sync_guild_deaths",
            user_id=user.id,
            guild_id=guild_id,
            members=len(members),
        )

        processed = 0
        new_deaths = 0

        for player_id, player_name in members:
            character = await self.client.fetch_character(player_name)
            if character is None:
                continue
            processed += 1
            if not character.deaths:
                continue

            async def _append(
                session: AsyncSession,
                player_id: int = player_id,
                deaths: List[CharacterDeath] = character.deaths,
            ) -> int:
                return await self._append_new_deaths(session, player_id, deaths)

            new_deaths += await self.db.run_in_transaction(
                _append,
                operation_name="deaths.append",
                context={"player_id": player_id},
            )

        self.log.info(
            "Death sync completed",
            extra={
                "guild_id": guild_id,
                "processed_players": processed,
                "new_deaths": new_deaths,
            },
        )
        return {"processedPlayers": processed, "newDeaths": new_deaths}

    async def latest_death_at(
        self, session: AsyncSession, player_id: int
    ) -> Optional[datetime]:
        result = await session.execute(
            select(Death.timestamp)
            .where(Death.player_id == player_id)
            .order_by(Death.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _append_new_deaths(
        self,
        session: AsyncSession,
        player_id: int,
        deaths: List[CharacterDeath],
    ) -> int:
        latest = await self.latest_death_at(session, player_id)
        fresh = [d for d in deaths if latest is None or d.date > latest]

        for death in fresh:
            self._death_repo.add(
                session,
                Death(
                    player_id=player_id,
                    timestamp=death.date,
                    level=death.level,
                    killers=death.killer_names,
                    description=death.reason,
                    type=classify_death(death),
                ),
            )

        if fresh:
            await session.flush()
            self.log.debug(
                "Appended deaths",
                extra={"player_id": player_id, "count": len(fresh)},
            )
        return len(fresh)
