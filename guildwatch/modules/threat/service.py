"""
ThreatService - enemy roster with computed threat tiers
=======================================================

Lists players from the account's ENEMY guild configurations, ordered online
first and then by level, each annotated with:
- kills24h: deaths in the last 24 hours whose killers include the enemy and
  whose victim belongs to a monitored guild
- deaths24h: the enemy's own deaths in the last 24 hours
- threat: ``classify_threat`` over kills24h, level and online state
"""

from __future__ import annotations

from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Sequence

from sqlalchemy import func, select

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import Death, Player
from guildwatch.modules.accounts.scope import enemy_guild_ids, monitored_guild_ids
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService

from .classifier import classify_threat

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.database.models import User

KILL_WINDOW = timedelta(hours=24)


class ThreatService(BaseService):
    def __init__(self, db: DatabaseService, logger: Logger) -> None:
        super().__init__(db, logger)
        self._player_repo = BaseRepository[Player](Player, self.log)

    async def list_enemies(self, user: User) -> List[Dict[str, Any]]:
        since = utc_now() - KILL_WINDOW

        async with self.db.get_session() as session:
            enemy_ids = await enemy_guild_ids(session, user.id)
            if not enemy_ids:
                return []

            enemies = await self._player_repo.find_many_where(
                session,
                Player.guild_id.in_(enemy_ids),
                order_by=[Player.is_online.desc(), Player.level.desc(), Player.id],
            )
            if not enemies:
                return []

            protected = await monitored_guild_ids(session, user)
            kills = await self._kills_since(session, protected, since)
            deaths = await self._deaths_since(
                session, [enemy.id for enemy in enemies], since
            )

            rows = [
                self._to_row(enemy, kills.get(enemy.name, 0), deaths.get(enemy.id, 0))
                for enemy in enemies
            ]

        self.log.debug(
            "Enemy list computed",
            extra={"user_id": user.id, "enemies": len(rows)},
        )
        return rows

    @staticmethod
    async def _kills_since(
        session: AsyncSession,
        protected_guild_ids: Sequence[int],
        since: datetime,
    ) -> Counter[str]:
        """Per killer name, how many protected-guild deaths they took part in."""
        if not protected_guild_ids:
            return Counter()

        result = await session.execute(
            select(Death.killers)
            .join(Player, Death.player_id == Player.id)
            .where(
                Player.guild_id.in_(list(protected_guild_ids)),
                Death.timestamp >= since,
            )
        )
        counts: Counter[str] = Counter()
        for (killers,) in result.all():
            for name in set(killers or []):
                counts[name] += 1
        return counts

    @staticmethod
    async def _deaths_since(
        session: AsyncSession,
        player_ids: Sequence[int],
        since: datetime,
    ) -> Dict[int, int]:
        result = await session.execute(
            select(Death.player_id, func.count(Death.id))
            .where(Death.player_id.in_(list(player_ids)), Death.timestamp >= since)
            .group_by(Death.player_id)
        )
        return {player_id: count for player_id, count in result.all()}

    @staticmethod
    def _to_row(enemy: Player, kills_24h: int, deaths_24h: int) -> Dict[str, Any]:
        last_seen = enemy.last_seen or enemy.updated_at
        return {
            "id": enemy.id,
            "name": enemy.name,
            "level": enemy.level,
            "vocation": enemy.vocation,
            "guild": enemy.guild.name if enemy.guild is not None else "Unknown",
            "status": "online" if enemy.is_online else "offline",
            "lastSeen": last_seen.isoformat(),
            "kills24h": kills_24h,
            "deaths24h": deaths_24h,
            "threat": classify_threat(kills_24h, enemy.level, enemy.is_online).value,
            "addedDate": enemy.created_at.isoformat(),
        }
