"""
Pytest Configuration and Fixtures
=================================

Purpose
-------
Shared fixtures for the GuildWatch test suite.

Fixture Categories
------------------
- **Database**: file-backed SQLite ``DatabaseService`` per test, schema created
- **TibiaData**: in-memory fake served through ``httpx.MockTransport``
- **Factories**: guilds, users, players, deaths and monitoring configuration
- **HTTP**: ``httpx.AsyncClient`` bound to the FastAPI app via ASGITransport

The environment is pinned before any ``guildwatch`` import because Config
loads on import.
"""

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SYNC_DELAY_SECONDS"] = "0"
os.environ["SECRET_KEY"] = "guildwatch-test-secret-key-0123456789"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote

import httpx
import pytest
from sqlalchemy import select

from guildwatch.api import create_app
from guildwatch.core.database import (
    DatabaseConfigSnapshot,
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
    DatabaseService,
)
from guildwatch.core.database.base import utc_now
from guildwatch.core.logging import get_logger
from guildwatch.database.models import (
    ConfigurationType,
    Death,
    DeathType,
    Guild,
    GuildConfiguration,
    GuildType,
    Player,
    PlayerType,
    User,
    UserRole,
    WorldSubscription,
)
from guildwatch.modules.accounts import create_token, hash_password
from guildwatch.modules.tibiadata import TibiaDataClient

from tests import payloads

TIBIADATA_TEST_URL = "https://api.test/v4"
GUILD_PASSWORD = "guild-secret"


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def retry_policy():
    """Retry policy without backoff so transient-failure tests stay fast."""
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(
            max_attempts=3,
            initial_backoff_ms=0,
            max_backoff_ms=0,
            jitter_ms=0,
        )
    )


@pytest.fixture
async def db(tmp_path, retry_policy):
    """Open DatabaseService on a fresh SQLite file with all tables created."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'guildwatch-test.db'}"
    service = DatabaseService(
        DatabaseConfigSnapshot.from_config(url), retry_policy=retry_policy
    )
    await service.open()
    await service.create_all()

    yield service

    await service.close()


@pytest.fixture
def logger():
    return get_logger("guildwatch.tests")


# ============================================================================
# TIBIADATA FAKE
# ============================================================================


class FakeTibiaData:
    """
    In-memory TibiaData v4 backend.

    Serves /guild/{name}, /guilds/{world} and /character/{name}; anything
    unknown answers 404 with a matching ``information.status``.
    """

    def __init__(self) -> None:
        self.guilds: Dict[str, Dict[str, Any]] = {}
        self.worlds: Dict[str, List[str]] = {}
        self.characters: Dict[str, Dict[str, Any]] = {}
        self.requests: List[str] = []

    def add_world(self, world: str) -> None:
        self.worlds.setdefault(world, [])

    def add_guild(
        self, name: str, world: str, members: Sequence[Dict[str, Any]] = ()
    ) -> None:
        self.guilds[name] = payloads.guild_payload(name, world, members)
        names = self.worlds.setdefault(world, [])
        if name not in names:
            names.append(name)

    def add_character(
        self,
        name: str,
        world: str,
        deaths: Sequence[Dict[str, Any]] = (),
        **profile: Any,
    ) -> None:
        self.characters[name] = payloads.character_payload(
            name, world, deaths=deaths, **profile
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = unquote(request.url.path)
        self.requests.append(path)
        _, _, resource = path.partition("/v4/")
        kind, _, key = resource.partition("/")

        if kind == "guild" and key in self.guilds:
            return httpx.Response(200, json=self.guilds[key])
        if kind == "guilds" and key in self.worlds:
            return httpx.Response(
                200, json=payloads.world_guilds_payload(key, self.worlds[key])
            )
        if kind == "character" and key in self.characters:
            return httpx.Response(200, json=self.characters[key])
        return httpx.Response(404, json=payloads.error_payload(404))


@pytest.fixture
def tibia_fake():
    fake = FakeTibiaData()
    fake.add_world("Antica")
    return fake


@pytest.fixture
async def tibia_client(tibia_fake):
    client = TibiaDataClient(
        base_url=TIBIADATA_TEST_URL,
        transport=httpx.MockTransport(tibia_fake.handler),
    )
    yield client
    await client.aclose()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_guild(db):
    async def _make(
        name: str = "Red Rose",
        world: str = "Antica",
        type: GuildType = GuildType.MAIN,
        password: Optional[str] = GUILD_PASSWORD,
    ) -> Guild:
        async with db.get_transaction() as session:
            guild = Guild(
                name=name,
                world=world,
                type=type,
                password_hash=hash_password(password, rounds=4) if password else None,
                is_active=True,
            )
            session.add(guild)
            await session.flush()
        return guild

    return _make


@pytest.fixture
def make_user(db):
    async def _make(
        guild: Optional[Guild] = None,
        character_name: str = "Knight Alpha",
        world: str = "Antica",
        role: UserRole = UserRole.GUILD_ADMIN,
    ) -> User:
        async with db.get_transaction() as session:
            user = User(
                character_name=character_name,
                world=world,
                role=role,
                guild_id=guild.id if guild is not None else None,
            )
            session.add(user)
            await session.flush()
            await session.refresh(user, attribute_names=["guild"])
        return user

    return _make


@pytest.fixture
def make_player(db):
    async def _make(
        guild: Optional[Guild],
        name: str,
        level: int = 100,
        vocation: str = "Knight",
        is_online: bool = False,
        type: PlayerType = PlayerType.GUILD_MEMBER,
        last_seen=None,
        world: Optional[str] = None,
    ) -> Player:
        async with db.get_transaction() as session:
            player = Player(
                name=name,
                world=world or (guild.world if guild is not None else "Antica"),
                level=level,
                vocation=vocation,
                is_online=is_online,
                last_seen=last_seen or utc_now(),
                type=type,
                guild_id=guild.id if guild is not None else None,
            )
            session.add(player)
            await session.flush()
            await session.refresh(player, attribute_names=["guild"])
        return player

    return _make


@pytest.fixture
def make_death(db):
    async def _make(
        player: Player,
        hours_ago: float = 1,
        level: Optional[int] = None,
        killers: Sequence[str] = ("a dragon",),
        type: DeathType = DeathType.PVE,
    ) -> Death:
        async with db.get_transaction() as session:
            death = Death(
                player_id=player.id,
                timestamp=utc_now() - timedelta(hours=hours_ago),
                level=level if level is not None else player.level,
                killers=list(killers),
                description=f"Died at Level {player.level}",
                type=type,
            )
            session.add(death)
            await session.flush()
        return death

    return _make


@pytest.fixture
def configure_guild(db):
    """Attach ``guild`` to the user's world subscription, creating it if needed."""

    async def _configure(
        user: User,
        guild: Guild,
        config_type: ConfigurationType = ConfigurationType.MAIN,
        is_active: bool = True,
    ) -> GuildConfiguration:
        async with db.get_transaction() as session:
            result = await session.execute(
                select(WorldSubscription).where(
                    WorldSubscription.user_id == user.id,
                    WorldSubscription.world == guild.world,
                )
            )
            ws = result.scalar_one_or_none()
            if ws is None:
                ws = WorldSubscription(user_id=user.id, world=guild.world, is_active=True)
                session.add(ws)
                await session.flush()

            config = GuildConfiguration(
                world_subscription_id=ws.id,
                guild_id=guild.id,
                type=config_type,
                priority=1,
                is_active=is_active,
            )
            session.add(config)
            await session.flush()
        return config

    return _configure


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest.fixture
async def api_client(db, tibia_client):
    app = create_app(db, tibia_client)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_token(user.id)}"}

    return _headers
