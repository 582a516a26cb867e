"""
Integration tests for accounts and monitoring scope.

Covers registration, login, guild password changes, world subscriptions and
guild configurations.
"""

import pytest
from sqlalchemy import func, select

from guildwatch.database.models import (
    ConfigurationType,
    Guild,
    GuildType,
    Player,
    PlayerType,
    PlanId,
    Subscription,
    SubscriptionStatus,
    UserRole,
)
from guildwatch.modules.accounts import (
    AccountService,
    MonitoringService,
    check_password,
    guild_type_for,
    verify_token,
)
from guildwatch.modules.shared import (
    AuthenticationError,
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

from tests.conftest import GUILD_PASSWORD


@pytest.fixture
def accounts(db, logger):
    return AccountService(db, logger)


@pytest.fixture
def monitoring(db, tibia_client, logger):
    return MonitoringService(db, tibia_client, logger)


async def _guild(db, name, world="Antica"):
    async with db.get_session() as session:
        result = await session.execute(
            select(Guild).where(Guild.name == name, Guild.world == world)
        )
        return result.scalar_one_or_none()


@pytest.mark.integration
@pytest.mark.database
class TestRegistration:
    async def test_register_creates_admin_and_main_guild(self, db, accounts):
        # Act
        result = await accounts.register("Knight Alpha", "Antica", "Red Rose", "secret1")

        # Assert
        assert result["success"] is True
        assert result["message"] == "Account created successfully"
        user = result["user"]
        assert user["characterName"] == "Knight Alpha"
        assert user["role"] == "GUILD_ADMIN"
        assert user["guildName"] == "Red Rose"

        guild = await _guild(db, "Red Rose")
        assert guild.type == GuildType.MAIN
        assert check_password("secret1", guild.password_hash)

    async def test_existing_guild_is_reused(self, db, accounts, make_guild):
        guild = await make_guild("Red Rose", "Antica")

        result = await accounts.register("Knight Alpha", "Antica", "Red Rose", "another1")

        assert result["user"]["guildId"] == guild.id
        stored = await _guild(db, "Red Rose")
        assert check_password(GUILD_PASSWORD, stored.password_hash)

    async def test_duplicate_character_rejected(self, accounts):
        await accounts.register("Knight Alpha", "Antica", "Red Rose", "secret1")

        with pytest.raises(ConflictError) as exc_info:
            await accounts.register("Knight Alpha", "Antica", "Blue Moon", "secret1")

        assert exc_info.value.public_message == (
            "A user with this character name and world already exists"
        )

    async def test_short_password_rejected(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.register("Knight Alpha", "Antica", "Red Rose", "abc")

    async def test_names_are_stripped(self, accounts):
        result = await accounts.register("  Knight Alpha ", "Antica ", " Red Rose", "secret1")

        assert result["user"]["characterName"] == "Knight Alpha"
        assert result["user"]["world"] == "Antica"


@pytest.mark.integration
@pytest.mark.database
class TestLogin:
    async def test_login_returns_valid_token(self, accounts, make_guild, make_user):
        user = await make_user(await make_guild())

        result = await accounts.login("Knight Alpha", "Antica", GUILD_PASSWORD)

        assert verify_token(result["token"]) == user.id
        assert result["user"]["id"] == user.id

        refreshed = await accounts.get_user(user.id)
        assert refreshed.last_login_at is not None

    @pytest.mark.parametrize(
        "character, world, password",
        [
            ("Knight Alpha", "Antica", "wrong-password"),
            ("Nobody", "Antica", GUILD_PASSWORD),
            ("Knight Alpha", "Secura", GUILD_PASSWORD),
        ],
    )
    async def test_invalid_credentials(
        self, accounts, make_guild, make_user, character, world, password
    ):
        await make_user(await make_guild())

        with pytest.raises(AuthenticationError) as exc_info:
            await accounts.login(character, world, password)

        assert exc_info.value.public_message == "Invalid credentials"


@pytest.mark.integration
@pytest.mark.database
class TestGuildPassword:
    async def test_admin_updates_configured_guild(
        self, db, accounts, make_guild, make_user, configure_guild
    ):
        guild = await make_guild()
        user = await make_user(guild)
        await configure_guild(user, guild)

        result = await accounts.update_guild_password(user, guild.id, "new-secret")

        assert result == {"success": True, "message": "Password updated for Red Rose"}
        stored = await _guild(db, "Red Rose")
        assert check_password("new-secret", stored.password_hash)

    async def test_unreachable_guild_denied(self, accounts, make_guild, make_user):
        home = await make_guild("Red Rose")
        other = await make_guild("Blue Moon")
        user = await make_user(home)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await accounts.update_guild_password(user, other.id, "new-secret")

        assert exc_info.value.public_message == "Access denied to this guild"

    async def test_member_role_denied(self, accounts, make_guild, make_user, configure_guild):
        guild = await make_guild()
        user = await make_user(guild, role=UserRole.GUILD_MEMBER)
        await configure_guild(user, guild)

        with pytest.raises(PermissionDeniedError):
            await accounts.update_guild_password(user, guild.id, "new-secret")

    async def test_unknown_guild(self, accounts, make_user):
        user = await make_user(None)

        with pytest.raises(NotFoundError):
            await accounts.update_guild_password(user, 999, "new-secret")


@pytest.mark.integration
@pytest.mark.database
class TestWorldSubscriptions:
    async def test_create_and_list(self, monitoring, make_guild, make_user):
        user = await make_user(await make_guild())

        created = await monitoring.create_world_subscription(user, "Antica")
        listed = await monitoring.list_world_subscriptions(user)

        assert created["world"] == "Antica"
        assert created["isActive"] is True
        assert created["maxGuilds"] == 10
        assert [row["id"] for row in listed] == [created["id"]]
        assert listed[0]["guildCount"] == 0

    async def test_invalid_world(self, monitoring, make_user):
        user = await make_user(None)

        with pytest.raises(ValidationError) as exc_info:
            await monitoring.create_world_subscription(user, "Atlantis")

        assert exc_info.value.public_message == "Invalid world"

    async def test_duplicate_world(self, monitoring, make_user):
        user = await make_user(None)
        await monitoring.create_world_subscription(user, "Antica")

        with pytest.raises(ConflictError):
            await monitoring.create_world_subscription(user, "Antica")

    async def test_world_limit(self, monitoring, tibia_fake, make_user):
        tibia_fake.add_world("Secura")
        user = await make_user(None)
        await monitoring.create_world_subscription(user, "Antica")

        with pytest.raises(PermissionDeniedError) as exc_info:
            await monitoring.create_world_subscription(user, "Secura")

        assert exc_info.value.public_message == "World limit reached"

    async def test_paid_world_limit_allows_more(self, db, monitoring, tibia_fake, make_user):
        tibia_fake.add_world("Secura")
        user = await make_user(None)
        async with db.get_transaction() as session:
            session.add(
                Subscription(
                    user_id=user.id,
                    plan=PlanId.EXTENDED,
                    status=SubscriptionStatus.ACTIVE,
                    world_limit=2,
                    amount=40.0,
                )
            )

        await monitoring.create_world_subscription(user, "Antica")
        second = await monitoring.create_world_subscription(user, "Secura")

        assert second["world"] == "Secura"

    async def test_toggle_active(self, monitoring, make_user):
        user = await make_user(None)
        created = await monitoring.create_world_subscription(user, "Antica")

        updated = await monitoring.set_world_subscription_active(user, created["id"], False)

        assert updated["isActive"] is False

    async def test_toggle_foreign_subscription(self, monitoring, make_user):
        owner = await make_user(None)
        stranger = await make_user(None, character_name="Stranger")
        created = await monitoring.create_world_subscription(owner, "Antica")

        with pytest.raises(NotFoundError):
            await monitoring.set_world_subscription_active(stranger, created["id"], False)


@pytest.mark.integration
@pytest.mark.database
class TestGuildConfigurations:
    async def test_create_finds_or_creates_guild(self, db, monitoring, make_user):
        # Arrange
        user = await make_user(None)
        ws = await monitoring.create_world_subscription(user, "Antica")

        # Act
        main = await monitoring.create_guild_configuration(
            user, ws["id"], "Red Rose", ConfigurationType.MAIN
        )
        enemy = await monitoring.create_guild_configuration(
            user, ws["id"], "Black Hand", ConfigurationType.ENEMY
        )

        # Assert
        assert main["priority"] == 1
        assert enemy["priority"] == 2
        assert enemy["type"] == "ENEMY"
        assert enemy["world"] == "Antica"
        assert (await _guild(db, "Black Hand")).type == GuildType.ENEMY

        listed = await monitoring.list_guild_configurations(user)
        assert [row["guildName"] for row in listed] == ["Black Hand", "Red Rose"]

    async def test_duplicate_configuration(self, monitoring, make_user):
        user = await make_user(None)
        ws = await monitoring.create_world_subscription(user, "Antica")
        await monitoring.create_guild_configuration(user, ws["id"], "Red Rose", ConfigurationType.MAIN)

        with pytest.raises(ConflictError):
            await monitoring.create_guild_configuration(
                user, ws["id"], "Red Rose", ConfigurationType.ALLY
            )

    async def test_guild_limit(self, db, monitoring, make_user):
        user = await make_user(None)
        ws = await monitoring.create_world_subscription(user, "Antica")
        for i in range(10):
            await monitoring.create_guild_configuration(
                user, ws["id"], f"Guild {i}", ConfigurationType.ALLY
            )

        with pytest.raises(InvalidOperationError) as exc_info:
            await monitoring.create_guild_configuration(
                user, ws["id"], "One Too Many", ConfigurationType.ALLY
            )

        assert exc_info.value.public_message == "Guild limit reached for this world (10)"

    async def test_foreign_world_subscription(self, monitoring, make_user):
        owner = await make_user(None)
        stranger = await make_user(None, character_name="Stranger")
        ws = await monitoring.create_world_subscription(owner, "Antica")

        with pytest.raises(NotFoundError):
            await monitoring.create_guild_configuration(
                stranger, ws["id"], "Red Rose", ConfigurationType.MAIN
            )

    async def test_toggle_configuration(self, monitoring, make_user):
        user = await make_user(None)
        ws = await monitoring.create_world_subscription(user, "Antica")
        config = await monitoring.create_guild_configuration(
            user, ws["id"], "Red Rose", ConfigurationType.MAIN
        )

        updated = await monitoring.set_configuration_active(user, config["id"], False)

        assert updated["isActive"] is False

    async def test_delete_removes_unreferenced_guild_and_players(
        self, db, monitoring, make_user, make_player
    ):
        # Arrange
        user = await make_user(None)
        ws = await monitoring.create_world_subscription(user, "Antica")
        config = await monitoring.create_guild_configuration(
            user, ws["id"], "Black Hand", ConfigurationType.ENEMY
        )
        guild = await _guild(db, "Black Hand")
        await make_player(guild, "Villain", type=PlayerType.EXTERNAL_ENEMY)

        # Act
        result = await monitoring.delete_guild_configuration(user, config["id"])

        # Assert
        assert result["guildRemoved"] is True
        assert result["playersRemoved"] == 1
        assert await _guild(db, "Black Hand") is None
        async with db.get_session() as session:
            assert await session.scalar(select(func.count(Player.id))) == 0

    async def test_delete_keeps_home_guild(self, db, monitoring, make_guild, make_user, configure_guild):
        home = await make_guild("Red Rose", "Antica")
        user = await make_user(home)
        config = await configure_guild(user, home)

        result = await monitoring.delete_guild_configuration(user, config.id)

        assert result["guildRemoved"] is False
        assert await _guild(db, "Red Rose") is not None

    async def test_delete_keeps_guild_configured_elsewhere(
        self, db, monitoring, make_guild, make_user, configure_guild
    ):
        enemy = await make_guild("Black Hand", "Antica", type=GuildType.ENEMY, password=None)
        first = await make_user(None)
        second = await make_user(None, character_name="Druid Beta")
        config = await configure_guild(first, enemy, ConfigurationType.ENEMY)
        await configure_guild(second, enemy, ConfigurationType.ENEMY)

        result = await monitoring.delete_guild_configuration(first, config.id)

        assert result["guildRemoved"] is False
        assert await _guild(db, "Black Hand") is not None


@pytest.mark.unit
@pytest.mark.parametrize(
    "config_type, guild_type",
    [
        (ConfigurationType.MAIN, GuildType.MAIN),
        (ConfigurationType.ALLY, GuildType.ALLY),
        (ConfigurationType.ENEMY, GuildType.ENEMY),
    ],
)
def test_guild_type_for(config_type, guild_type):
    assert guild_type_for(config_type) == guild_type
