"""
AccountService - registration, login and guild password management
==================================================================

Accounts are identified by a Tibia character on a world. The guild password
(bcrypt) is the shared credential: logging in checks the password against
the hash stored on the user's guild.

Handles:
- register: create a GUILD_ADMIN user, finding or creating their MAIN guild
- login: verify credentials and issue a bearer token
- get_user: resolve a token's user id
- update_guild_password: GUILD_ADMIN re-hash of a reachable guild's password
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import func, select

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import (
    Guild,
    GuildConfiguration,
    GuildType,
    User,
    UserRole,
    WorldSubscription,
)
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)

from .security import check_password, create_token, hash_password

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 100


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "characterName": user.character_name,
        "world": user.world,
        "role": user.role.value,
        "guildId": user.guild_id,
        "guildName": user.guild.name if user.guild is not None else None,
    }


class AccountService(BaseService):
    def __init__(self, db: DatabaseService, logger: Logger) -> None:
        super().__init__(db, logger)
        self._user_repo = BaseRepository[User](User, self.log)
        self._guild_repo = BaseRepository[Guild](Guild, self.log)

    async def register(
        self,
        character_name: str,
        world: str,
        guild_name: str,
        password: str,
    ) -> Dict[str, Any]:
        """
        Create a GUILD_ADMIN account.

        An existing (guild_name, world) guild is reused as-is; otherwise a
        MAIN guild is created with the hashed password.

        Raises:
            ValidationError: Field length out of bounds
            ConflictError: (character_name, world) already registered
        """
        character_name = self.validate_length(character_name, "characterName", 1, 30)
        world = self.validate_length(world, "world", 1, 30)
        guild_name = self.validate_length(guild_name, "guildName", 1, 50)
        self.validate_length(
            password, "password", MIN_PASSWORD_LENGTH, MAX_PASSWORD_LENGTH
        )

        password_hash = await asyncio.to_thread(
            hash_password, password, self.get_config("BCRYPT_ROUNDS")
        )

        async def _register(session: AsyncSession) -> Dict[str, Any]:
            if await self._user_repo.exists(
                session, User.character_name == character_name, User.world == world
            ):
                raise ConflictError(
                    "User",
                    "A user with this character name and world already exists",
                )

            guild = await self._guild_repo.find_one_where(
                session, Guild.name == guild_name, Guild.world == world
            )
            if guild is None:
                guild = self._guild_repo.add(
                    session,
                    Guild(
                        name=guild_name,
                        world=world,
                        type=GuildType.MAIN,
                        password_hash=password_hash,
                        description=f"Main guild for {guild_name}",
                        is_active=True,
                    ),
                )
                await session.flush()

            user = self._user_repo.add(
                session,
                User(
                    character_name=character_name,
                    world=world,
                    role=UserRole.GUILD_ADMIN,
                    guild_id=guild.id,
                ),
            )
            await session.flush()
            await session.refresh(user, attribute_names=["guild"])
            return user_to_dict(user)

        user = await self.db.run_in_transaction(
            _register,
            operation_name="accounts.register",
            context={"character_name": character_name, "world": world},
        )
        self.log_operation(
            "accounts.register",
            user_id=user["id"],
            world=world,
            guild_id=user["guildId"],
        )
        return {
            "success": True,
            "message": "Account created successfully",
            "user": user,
        }

    async def login(
        self, character_name: str, world: str, password: str
    ) -> Dict[str, Any]:
        """
        Verify credentials against the user's guild password.

        Raises:
            AuthenticationError: Unknown user or wrong password
        """
        character_name = (character_name or "").strip()
        world = (world or "").strip()

        async with self.db.get_session() as session:
            user = await self._user_repo.find_one_where(
                session, User.character_name == character_name, User.world == world
            )
            password_hash = (
                user.guild.password_hash
                if user is not None and user.guild is not None
                else None
            )

        valid = await asyncio.to_thread(check_password, password, password_hash)
        if user is None or not valid:
            self.log.info(
                "Login rejected",
                extra={"character_name": character_name, "world": world},
            )
            raise AuthenticationError("Invalid credentials")

        async with self.db.get_transaction() as session:
            user = await self._user_repo.get_for_update(session, user.id)
            user.last_login_at = utc_now()
            payload = user_to_dict(user)

        self.log_operation("accounts.login", user_id=payload["id"])
        return {
            "token": create_token(
                payload["id"],
                ttl_seconds=self.get_config("SESSION_TTL_SECONDS"),
                secret=self.get_config("SECRET_KEY"),
            ),
            "user": payload,
        }

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self.db.get_session() as session:
            return await self._user_repo.get(session, user_id)

    async def update_guild_password(
        self, user: User, guild_id: int, password: str
    ) -> Dict[str, Any]:
        """
        Re-hash a guild's password.

        Raises:
            PermissionDeniedError: Caller is not GUILD_ADMIN, or the guild is
                not reachable through the caller's world subscriptions
            NotFoundError: Guild not stored
            ValidationError: Password shorter than 6 characters
        """
        if user.role != UserRole.GUILD_ADMIN:
            raise PermissionDeniedError("update_guild_password")
        self.validate_positive_int(guild_id, "guildId")
        self.validate_length(
            password, "password", MIN_PASSWORD_LENGTH, MAX_PASSWORD_LENGTH
        )

        password_hash = await asyncio.to_thread(
            hash_password, password, self.get_config("BCRYPT_ROUNDS")
        )

        async def _update(session: AsyncSession) -> str:
            guild = await self._guild_repo.get_for_update(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)

            reachable = await session.scalar(
                select(func.count())
                .select_from(GuildConfiguration)
                .join(
                    WorldSubscription,
                    GuildConfiguration.world_subscription_id == WorldSubscription.id,
                )
                .where(
                    GuildConfiguration.guild_id == guild_id,
                    WorldSubscription.user_id == user.id,
                )
            )
            if not reachable:
                raise PermissionDeniedError(
                    "update_guild_password", "Access denied to this guild"
                )

            guild.password_hash = password_hash
            return guild.name

        guild_name = await self.db.run_in_transaction(
            _update,
            operation_name="accounts.update_guild_password",
            context={"user_id": user.id, "guild_id": guild_id},
        )
        self.log_operation(
            "accounts.update_guild_password", user_id=user.id, guild_id=guild_id
        )
        return {"success": True, "message": f"Password updated for {guild_name}"}
