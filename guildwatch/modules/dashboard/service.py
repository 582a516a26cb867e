"""
DashboardService - read-only guild dashboard queries
====================================================

Queries are scoped to the caller's own guild (``user.guild_id``) and, for
enemy counts, to the caller's world. Online monitoring is the exception: it
spans every guild configured under the caller's active world subscriptions.
Independent aggregates are issued concurrently, each on its own session.

Handles:
- Headline stats (members, online, enemies online, 24h deaths, plan status)
- Per-member stats (own deaths, guild deaths today)
- Online player list (members first, then same-world enemies)
- Online monitoring across every configured guild
- Recent member deaths, range-filtered death list, the caller's own deaths
- Death statistics over a time range
- Paginated member listing
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import and_, case, func, or_, select

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import (
    ConfigurationType,
    Death,
    DeathType,
    Guild,
    Player,
    PlayerType,
    Subscription,
    WorldSubscription,
)
from guildwatch.modules.accounts.scope import active_configurations, active_worlds
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import InvalidOperationError, NotFoundError

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy import ColumnElement

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.database.models import User

ONLINE_PLAYERS_LIMIT = 50
RECENT_DEATHS_LIMIT = 20
DEATH_LIST_LIMIT = 100
MY_DEATHS_LIMIT = 10
MY_DEATHS_WINDOW = timedelta(days=7)
TOP_KILLERS_LIMIT = 10
TREND_DAYS = 7

DEATH_STATS_RANGES: Dict[str, Optional[timedelta]] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}
DEFAULT_DEATH_STATS_RANGE = "7d"


def range_start(range_key: Optional[str], now: datetime) -> Optional[datetime]:
    """Lower bound for a stats range; unknown keys mean all time."""
    window = DEATH_STATS_RANGES.get(range_key or DEFAULT_DEATH_STATS_RANGE)
    return now - window if window is not None else None


PLAYER_TYPE_BY_CONFIGURATION = {
    ConfigurationType.MAIN: PlayerType.GUILD_MEMBER,
    ConfigurationType.ALLY: PlayerType.EXTERNAL_ALLY,
    ConfigurationType.ENEMY: PlayerType.EXTERNAL_ENEMY,
}


class DashboardService(BaseService):
    def __init__(self, db: DatabaseService, logger: Logger) -> None:
        super().__init__(db, logger)
        self._player_repo = BaseRepository[Player](Player, self.log)

    @staticmethod
    def _require_guild(user: User) -> int:
        if user.guild_id is None:
            raise NotFoundError("Guild", None)
        return user.guild_id

    @staticmethod
    def _member_conditions(guild_id: int) -> List[ColumnElement[bool]]:
        return [Player.guild_id == guild_id, Player.type == PlayerType.GUILD_MEMBER]

    async def _count_players(self, *conditions: ColumnElement[bool]) -> int:
        async with self.db.get_session() as session:
            return await self._player_repo.count(session, *conditions)

    async def _count_guild_deaths(
        self, guild_id: int, *conditions: ColumnElement[bool]
    ) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.count(Death.id))
                .join(Player, Death.player_id == Player.id)
                .where(Player.guild_id == guild_id, *conditions)
            )
            return int(result.scalar_one())

    async def _subscription_status(self, user_id: int) -> str:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Subscription.status).where(Subscription.user_id == user_id)
            )
            status = result.scalar_one_or_none()
            return status.value if status is not None else "inactive"

    async def _worlds_monitored(self, user_id: int) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.count(WorldSubscription.id)).where(
                    WorldSubscription.user_id == user_id,
                    WorldSubscription.is_active.is_(True),
                )
            )
            return int(result.scalar_one())

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def stats(self, user: User) -> Dict[str, Any]:
        guild_id = self._require_guild(user)
        since = utc_now() - timedelta(hours=24)

        (
            total_players,
            online_players,
            online_enemies,
            recent_deaths,
            subscription_status,
            worlds_monitored,
        ) = await asyncio.gather(
            self._count_players(*self._member_conditions(guild_id)),
            self._count_players(
                *self._member_conditions(guild_id), Player.is_online.is_(True)
            ),
            self._count_players(
                Player.world == user.world,
                Player.type == PlayerType.EXTERNAL_ENEMY,
                Player.is_online.is_(True),
            ),
            self._count_guild_deaths(guild_id, Death.timestamp >= since),
            self._subscription_status(user.id),
            self._worlds_monitored(user.id),
        )

        return {
            "totalPlayers": total_players,
            "onlinePlayers": online_players,
            "onlineEnemies": online_enemies,
            "recentDeaths": recent_deaths,
            "subscriptionStatus": subscription_status,
            "worldsMonitored": worlds_monitored,
        }

    async def _guild_world(self, guild_id: int) -> str:
        async with self.db.get_session() as session:
            world = await session.scalar(select(Guild.world).where(Guild.id == guild_id))
        if world is None:
            raise NotFoundError("Guild", guild_id)
        return world

    async def member_stats(self, user: User) -> Dict[str, Any]:
        """
        Counters for a single member's view.

        ``myRecentDeaths`` covers the caller's character over the last seven
        days; ``guildRecentDeaths`` counts guild deaths since midnight UTC.
        Enemy counts use the guild's world.
        """
        if user.guild_id is None:
            raise InvalidOperationError("member_stats", "User not in a guild")
        guild_id = user.guild_id
        world = await self._guild_world(guild_id)

        now = utc_now()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

        members_online, enemies_online, my_deaths, guild_deaths = await asyncio.gather(
            self._count_players(
                *self._member_conditions(guild_id), Player.is_online.is_(True)
            ),
            self._count_players(
                Player.world == world,
                Player.type == PlayerType.EXTERNAL_ENEMY,
                Player.is_online.is_(True),
            ),
            self._count_guild_deaths(
                guild_id,
                Player.name == user.character_name,
                Death.timestamp >= now - MY_DEATHS_WINDOW,
            ),
            self._count_guild_deaths(guild_id, Death.timestamp >= midnight),
        )

        return {
            "guildMembersOnline": members_online,
            "enemiesOnline": enemies_online,
            "myRecentDeaths": my_deaths,
            "guildRecentDeaths": guild_deaths,
        }

    async def online_players(self, user: User) -> List[Dict[str, Any]]:
        guild_id = self._require_guild(user)
        members_first = case((Player.type == PlayerType.GUILD_MEMBER, 0), else_=1)

        async with self.db.get_session() as session:
            players = await self._player_repo.find_many_where(
                session,
                Player.is_online.is_(True),
                or_(
                    and_(*self._member_conditions(guild_id)),
                    and_(
                        Player.world == user.world,
                        Player.type == PlayerType.EXTERNAL_ENEMY,
                    ),
                ),
                order_by=[members_first, Player.level.desc(), Player.id],
                limit=ONLINE_PLAYERS_LIMIT,
            )
            return [
                {
                    "id": player.id,
                    "name": player.name,
                    "level": player.level,
                    "vocation": player.vocation,
                    "type": player.type.value,
                    "lastSeen": player.last_seen.isoformat() if player.last_seen else None,
                    "guild": (
                        {"name": player.guild.name, "type": player.guild.type.value}
                        if player.guild is not None
                        else None
                    ),
                }
                for player in players
            ]

    async def online_monitoring(self, user: User) -> List[Dict[str, Any]]:
        """
        Online players of the home guild and of every active configuration.

        Known enemies on a monitored world are included even when their guild
        is not configured. A row's ``type`` follows the configuration of the
        player's guild; players outside any configured guild are enemies.
        """
        if user.guild_id is None:
            raise InvalidOperationError("online_monitoring", "User not in a guild")

        async with self.db.get_session() as session:
            configs = await active_configurations(session, user.id)
            worlds = await active_worlds(session, user.id)

            types_by_guild: Dict[int, PlayerType] = {
                user.guild_id: PlayerType.GUILD_MEMBER
            }
            for config in configs:
                types_by_guild[config.guild_id] = PLAYER_TYPE_BY_CONFIGURATION[config.type]

            scope = [Player.guild_id.in_(list(types_by_guild))]
            if worlds:
                scope.append(
                    and_(
                        Player.world.in_(worlds),
                        Player.type == PlayerType.EXTERNAL_ENEMY,
                    )
                )

            players = await self._player_repo.find_many_where(
                session,
                Player.is_online.is_(True),
                or_(*scope),
                order_by=[Player.level.desc(), Player.name, Player.id],
            )

        return [
            {
                "id": player.id,
                "name": player.name,
                "level": player.level,
                "vocation": player.vocation,
                "type": types_by_guild.get(
                    player.guild_id, PlayerType.EXTERNAL_ENEMY
                ).value,
                "guild": player.guild.name if player.guild is not None else "Unknown",
                "lastSeen": (player.last_seen or player.updated_at).isoformat(),
                "isOnline": player.is_online,
            }
            for player in players
        ]

    # -------------------------------------------------------------------------
    # Death lists
    # -------------------------------------------------------------------------

    async def _guild_deaths(
        self, guild_id: int, *conditions: ColumnElement[bool], limit: int
    ) -> List[Death]:
        """Newest deaths of ``guild_id`` players, with player and guild loaded."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Death)
                .join(Player, Death.player_id == Player.id)
                .where(Player.guild_id == guild_id, *conditions)
                .order_by(Death.timestamp.desc(), Death.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def deaths(
        self, user: User, range_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Guild deaths inside ``range_key`` (same keys as ``death_stats``), newest first."""
        if user.guild_id is None:
            raise InvalidOperationError("deaths", "User not in a guild")

        since = range_start(range_key, utc_now())
        window = [Death.timestamp >= since] if since is not None else []
        deaths = await self._guild_deaths(user.guild_id, *window, limit=DEATH_LIST_LIMIT)

        return [
            {
                "id": death.id,
                "playerName": death.player.name,
                "level": death.level,
                "type": death.type.value,
                "killers": list(death.killers or []),
                "timestamp": death.timestamp.isoformat(),
                "description": death.description,
                "guild": (
                    death.player.guild.name
                    if death.player.guild is not None
                    else "Unknown"
                ),
            }
            for death in deaths
        ]

    async def my_deaths(self, user: User) -> List[Dict[str, Any]]:
        # The account's character is matched by name inside its guild.
        if user.guild_id is None:
            raise InvalidOperationError("my_deaths", "User not in a guild")

        deaths = await self._guild_deaths(
            user.guild_id,
            Player.name == user.character_name,
            limit=MY_DEATHS_LIMIT,
        )
        return [
            {
                "id": death.id,
                "level": death.level,
                "type": death.type.value,
                "killers": list(death.killers or []),
                "timestamp": death.timestamp.isoformat(),
                "description": death.description,
            }
            for death in deaths
        ]

    async def recent_deaths(self, user: User) -> List[Dict[str, Any]]:
        guild_id = self._require_guild(user)

        deaths = await self._guild_deaths(guild_id, limit=RECENT_DEATHS_LIMIT)
        return [
            {
                "id": death.id,
                "timestamp": death.timestamp.isoformat(),
                "level": death.level,
                "type": death.type.value,
                "killers": list(death.killers or []),
                "description": death.description,
                "player": {
                    "name": death.player.name,
                    "level": death.player.level,
                    "vocation": death.player.vocation,
                    "guild": (
                        {"name": death.player.guild.name}
                        if death.player.guild is not None
                        else None
                    ),
                },
            }
            for death in deaths
        ]

    # -------------------------------------------------------------------------
    # Death statistics
    # -------------------------------------------------------------------------

    async def _average_death_level(
        self, guild_id: int, *conditions: ColumnElement[bool]
    ) -> float:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.avg(Death.level))
                .join(Player, Death.player_id == Player.id)
                .where(Player.guild_id == guild_id, *conditions)
            )
            return float(result.scalar_one() or 0)

    async def _death_rows(
        self, guild_id: int, *conditions: ColumnElement[bool]
    ) -> List[Any]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Death.timestamp, Death.type, Death.killers)
                .join(Player, Death.player_id == Player.id)
                .where(Player.guild_id == guild_id, *conditions)
            )
            return list(result.all())

    async def death_stats(
        self, user: User, range_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Death statistics for the caller's guild.

        ``range_key`` is one of 24h, 7d, 30d or all (default 7d); unknown
        values fall back to all time. ``deathsByDay`` always covers the last
        seven days regardless of the range.
        """
        if user.guild_id is None:
            raise InvalidOperationError("death_stats", "User not in a guild")
        guild_id = user.guild_id

        now = utc_now()
        since = range_start(range_key, now)
        window = [Death.timestamp >= since] if since is not None else []
        trend_since = now - timedelta(days=TREND_DAYS)

        total, pvp, pve, average_level, pvp_rows, trend_rows = await asyncio.gather(
            self._count_guild_deaths(guild_id, *window),
            self._count_guild_deaths(guild_id, *window, Death.type == DeathType.PVP),
            self._count_guild_deaths(guild_id, *window, Death.type == DeathType.PVE),
            self._average_death_level(guild_id, *window),
            self._death_rows(guild_id, *window, Death.type == DeathType.PVP),
            self._death_rows(guild_id, Death.timestamp >= trend_since),
        )

        killer_counts: Counter[str] = Counter()
        for _, _, killers in pvp_rows:
            for killer in killers or []:
                name = (killer or "").strip()
                if name:
                    killer_counts[name] += 1

        by_day: Dict[str, Dict[str, int]] = {}
        for timestamp, death_type, _ in sorted(trend_rows, key=lambda row: row[0]):
            day = by_day.setdefault(
                timestamp.date().isoformat(), {"pvp": 0, "pve": 0}
            )
            day["pvp" if death_type == DeathType.PVP else "pve"] += 1

        return {
            "totalDeaths": total,
            "pvpDeaths": pvp,
            "pveDeaths": pve,
            "averageLevel": round(average_level, 2),
            "topKillers": [
                {"name": name, "kills": kills}
                for name, kills in killer_counts.most_common(TOP_KILLERS_LIMIT)
            ],
            "deathsByDay": [
                {"date": date, **counts} for date, counts in by_day.items()
            ],
        }

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    async def list_members(
        self, user: User, page: int = 1, limit: int = 20
    ) -> Dict[str, Any]:
        if user.guild_id is None:
            raise InvalidOperationError("list_members", "User not in a guild")

        async with self.db.get_session() as session:
            result = await self._player_repo.paginate(
                session,
                *self._member_conditions(user.guild_id),
                page=page,
                limit=limit,
                order_by=[Player.level.desc(), Player.name, Player.id],
            )
            members = [
                {
                    "id": player.id,
                    "name": player.name,
                    "level": player.level,
                    "vocation": player.vocation,
                    "status": "online" if player.is_online else "offline",
                    "lastSeen": (
                        player.last_seen.isoformat() if player.last_seen else None
                    ),
                    "joinDate": player.created_at.isoformat(),
                }
                for player in result.items
            ]

        return {"members": members, "pagination": result.meta()}
