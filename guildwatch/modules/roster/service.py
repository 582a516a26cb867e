"""
RosterService - Guild roster reconciliation
===========================================

Handles:
- Syncing one guild's roster from TibiaData into Player rows
- Syncing every guild an account has configured, one at a time

Rules:
- The roster world must match the stored guild world
- Members of ENEMY guilds are stored as EXTERNAL_ENEMY, everyone else as
  GUILD_MEMBER
- last_seen only moves forward while a member is online; offline members
  created for the first time get a sentinel 24 hours in the past
- Members are upserted on (name, world), each in its own savepoint; a
  failing member is logged and skipped without undoing the others
- Syncs of the same guild are serialized per process
"""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import Guild, GuildType, Player, PlayerType
from guildwatch.modules.accounts.scope import configured_guilds
from guildwatch.modules.shared.base_repository import BaseRepository, UniqueKey, bulk_upsert
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import (
    GuildWatchDomainException,
    InvalidOperationError,
    NotFoundError,
)

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.database.models import User
    from guildwatch.modules.tibiadata.client import TibiaDataClient
    from guildwatch.modules.tibiadata.models import RosterMember, RosterSnapshot

STALE_LAST_SEEN = timedelta(hours=24)
PLAYER_KEY = UniqueKey(Player, ("name", "world"))


@dataclass
class GuildSyncResult:
    guild_id: int
    guild_name: str
    total_members: int
    created: int
    updated: int
    failed: int
    online_count: int
    offline_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "guildId": self.guild_id,
            "guildName": self.guild_name,
            "totalMembers": self.total_members,
            "syncedCount": self.created,
            "updatedCount": self.updated,
            "failedCount": self.failed,
            "onlineCount": self.online_count,
            "offlineCount": self.offline_count,
        }


def target_player_type(guild_type: GuildType) -> PlayerType:
    return (
        PlayerType.EXTERNAL_ENEMY
        if guild_type == GuildType.ENEMY
        else PlayerType.GUILD_MEMBER
    )


class RosterService(BaseService):
    """
    Reconciles TibiaData rosters into the Player table.

    The service instance is shared across requests so its per-guild locks
    apply process-wide.
    """

    def __init__(
        self,
        db: DatabaseService,
        client: TibiaDataClient,
        logger: Logger,
        sync_delay_seconds: Optional[float] = None,
    ) -> None:
        super().__init__(db, logger)
        self.client = client
        self._sync_delay = (
            sync_delay_seconds
            if sync_delay_seconds is not None
            else float(self.get_config("SYNC_DELAY_SECONDS", 1.0))
        )
        self._guild_repo = BaseRepository[Guild](Guild, self.log)
        # A guild's lock lives only while a sync holds or awaits it.
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, guild_id: int) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        return lock

    # -------------------------------------------------------------------------
    # Single guild
    # -------------------------------------------------------------------------

    async def sync_guild(self, user: User, guild_id: int) -> GuildSyncResult:
        """
        Fetch the guild's roster and upsert its members.

        Raises:
            NotFoundError: Guild not stored, or roster unavailable
            InvalidOperationError: Roster world differs from the stored world
        """
        self.validate_positive_int(guild_id, "guildId")

        async with self._lock_for(guild_id):
            async with self.db.get_session() as session:
                guild = await self._guild_repo.get(session, guild_id)
                if guild is None:
                    raise NotFoundError("Guild", guild_id)
                guild_name, guild_world, guild_type = guild.name, guild.world, guild.type

            self.log_operation(
                "roster.sync_guild",
                user_id=user.id,
                guild_id=guild_id,
                guild_name=guild_name,
                world=guild_world,
            )

            roster = await self.client.fetch_guild_roster(guild_name)
            if roster is None:
                raise NotFoundError("Guild roster", guild_name)

            if roster.world != guild_world:
                raise InvalidOperationError(
                    "sync_guild",
                    f"Guild world mismatch. Expected: {guild_world}, Got: {roster.world}",
                )

            player_type = target_player_type(guild_type)

            async def _apply(session: AsyncSession) -> GuildSyncResult:
                return await self._apply_roster(
                    session, guild_id, guild_world, player_type, roster
                )

            result = await self.db.run_in_transaction(
                _apply,
                operation_name="roster.sync_guild",
                context={"guild_id": guild_id},
            )

        self.log.info(
            f"Sync completed for {guild_name}: {result.created} new, {result.updated} updated",
            extra={
                "guild_id": guild_id,
                "created": result.created,
                "updated": result.updated,
                "failed": result.failed,
            },
        )
        return result

    async def _apply_roster(
        self,
        session: AsyncSession,
        guild_id: int,
        world: str,
        player_type: PlayerType,
        roster: RosterSnapshot,
    ) -> GuildSyncResult:
        now = utc_now()
        rows = [
            self._member_row(member, guild_id, world, player_type, now)
            for member in roster.members
        ]

        outcome = await bulk_upsert(
            session,
            rows,
            PLAYER_KEY,
            insert_defaults={"last_seen": now - STALE_LAST_SEEN},
            isolate_rows=True,
            logger=self.log,
        )
        for (player_name, _), exc in outcome.failed:
            self.log.warning(
                f"Error syncing player {player_name}",
                extra={
                    "guild_id": guild_id,
                    "player_name": player_name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

        guild = await self._guild_repo.get(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)
        guild.last_sync_at = now

        return GuildSyncResult(
            guild_id=guild_id,
            guild_name=guild.name,
            total_members=len(roster.members),
            created=outcome.created_count,
            updated=outcome.updated_count,
            failed=outcome.failed_count,
            online_count=roster.online_count,
            offline_count=roster.offline_count,
        )

    @staticmethod
    def _member_row(
        member: RosterMember,
        guild_id: int,
        world: str,
        player_type: PlayerType,
        now: datetime,
    ) -> Dict[str, Any]:
        """Player columns for one roster member. last_seen is only carried while online."""
        row: Dict[str, Any] = {
            "name": member.name,
            "world": world,
            "level": member.level,
            "vocation": member.vocation,
            "is_online": member.is_online,
            "guild_id": guild_id,
            "type": player_type,
        }
        if member.is_online:
            row["last_seen"] = now
        return row

    # -------------------------------------------------------------------------
    # All configured guilds
    # -------------------------------------------------------------------------

    async def sync_all(self, user: User) -> Dict[str, Any]:
        """
        Sync every guild the user has configured, sequentially.

        Waits ``SYNC_DELAY_SECONDS`` between guilds. A failing guild is
        reported in ``syncResults`` and does not stop the run.
        """
        async with self.db.get_session() as session:
            guilds = [
                (guild.id, guild.name)
                for guild in await configured_guilds(session, user.id)
            ]

        if not guilds:
            return {
                "message": "No guilds configured to sync",
                "totalGuilds": 0,
                "successCount": 0,
                "failureCount": 0,
                "syncResults": [],
            }

        self.log_operation("roster.sync_all", user_id=user.id, guilds=len(guilds))

        results: List[Dict[str, Any]] = []
        success_count = 0

        for index, (guild_id, guild_name) in enumerate(guilds):
            if index > 0 and self._sync_delay > 0:
                await asyncio.sleep(self._sync_delay)

            try:
                outcome = await self.sync_guild(user, guild_id)
            except GuildWatchDomainException as exc:
                self.log.warning(
                    f"Sync failed for {guild_name}",
                    extra={"guild_id": guild_id, "error_code": exc.error_code},
                )
                results.append(_failure(guild_id, guild_name, exc.public_message))
                continue
            except SQLAlchemyError as exc:
                self.log_error("roster.sync_all", exc, guild_id=guild_id)
                results.append(_failure(guild_id, guild_name, "Database error"))
                continue

            success_count += 1
            results.append(outcome.to_dict())

        failure_count = len(guilds) - success_count
        return {
            "message": f"Synced {success_count} of {len(guilds)} guilds",
            "totalGuilds": len(guilds),
            "successCount": success_count,
            "failureCount": failure_count,
            "syncResults": results,
        }


def _failure(guild_id: int, guild_name: str, error: str) -> Dict[str, Any]:
    return {
        "guildId": guild_id,
        "guildName": guild_name,
        "success": False,
        "error": error,
    }
