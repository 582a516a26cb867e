"""
Integration tests for DashboardService read models.
"""

from datetime import timedelta

import pytest

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import ConfigurationType, DeathType, GuildType, PlayerType
from guildwatch.modules.dashboard import DashboardService, range_start
from guildwatch.modules.shared import InvalidOperationError, NotFoundError


@pytest.fixture
def dashboard(db, logger):
    return DashboardService(db, logger)


@pytest.fixture
async def guild_setup(make_guild, make_user, make_player):
    """Home guild with three members and one online enemy on the same world."""
    home = await make_guild("Red Rose", "Antica")
    enemy = await make_guild("Black Hand", "Antica", type=GuildType.ENEMY, password=None)
    user = await make_user(home)
    alpha = await make_player(home, "Alpha", level=300, is_online=True)
    bravo = await make_player(home, "Bravo", level=200, is_online=True)
    charlie = await make_player(home, "Charlie", level=100)
    villain = await make_player(
        enemy, "Villain", level=250, is_online=True, type=PlayerType.EXTERNAL_ENEMY
    )
    return user, {"alpha": alpha, "bravo": bravo, "charlie": charlie, "villain": villain}


@pytest.mark.unit
class TestRangeStart:
    @pytest.mark.parametrize(
        "key, delta",
        [("24h", timedelta(hours=24)), ("7d", timedelta(days=7)), ("30d", timedelta(days=30))],
    )
    def test_known_ranges(self, key, delta):
        now = utc_now()
        assert range_start(key, now) == now - delta

    def test_default_is_seven_days(self):
        now = utc_now()
        assert range_start(None, now) == now - timedelta(days=7)

    @pytest.mark.parametrize("key", ["all", "forever"])
    def test_all_time(self, key):
        assert range_start(key, utc_now()) is None


@pytest.mark.integration
@pytest.mark.database
class TestStats:
    async def test_counts(self, dashboard, guild_setup, make_death):
        # Arrange
        user, players = guild_setup
        await make_death(players["alpha"], hours_ago=2)
        await make_death(players["bravo"], hours_ago=30)

        # Act
        stats = await dashboard.stats(user)

        # Assert
        assert stats == {
            "totalPlayers": 3,
            "onlinePlayers": 2,
            "onlineEnemies": 1,
            "recentDeaths": 1,
            "subscriptionStatus": "inactive",
            "worldsMonitored": 0,
        }

    async def test_user_without_guild(self, dashboard, make_user):
        user = await make_user(None)

        with pytest.raises(NotFoundError):
            await dashboard.stats(user)


@pytest.mark.integration
@pytest.mark.database
class TestOnlinePlayers:
    async def test_members_before_enemies(self, dashboard, guild_setup):
        user, _ = guild_setup

        rows = await dashboard.online_players(user)

        assert [row["name"] for row in rows] == ["Alpha", "Bravo", "Villain"]
        assert rows[2]["type"] == "EXTERNAL_ENEMY"
        assert rows[2]["guild"] == {"name": "Black Hand", "type": "ENEMY"}


@pytest.mark.integration
@pytest.mark.database
class TestRecentDeaths:
    async def test_newest_first(self, dashboard, guild_setup, make_death):
        user, players = guild_setup
        await make_death(players["charlie"], hours_ago=5)
        await make_death(players["alpha"], hours_ago=1, killers=["Villain"], type=DeathType.PVP)
        await make_death(players["villain"], hours_ago=1)

        rows = await dashboard.recent_deaths(user)

        assert [row["player"]["name"] for row in rows] == ["Alpha", "Charlie"]
        assert rows[0]["killers"] == ["Villain"]
        assert rows[0]["type"] == "PVP"
        assert rows[0]["player"]["guild"] == {"name": "Red Rose"}


@pytest.mark.integration
@pytest.mark.database
class TestDeathStats:
    async def test_range_split_and_killers(self, dashboard, guild_setup, make_death):
        # Arrange
        user, players = guild_setup
        await make_death(players["alpha"], hours_ago=1, level=300, killers=["Villain", "Thug"], type=DeathType.PVP)
        await make_death(players["bravo"], hours_ago=2, level=200, killers=["Villain"], type=DeathType.PVP)
        await make_death(players["charlie"], hours_ago=3, level=100, killers=["a dragon"])
        await make_death(players["charlie"], hours_ago=24 * 10, level=90, killers=["Villain"], type=DeathType.PVP)

        # Act
        stats = await dashboard.death_stats(user, "7d")

        # Assert
        assert stats["totalDeaths"] == 3
        assert stats["pvpDeaths"] == 2
        assert stats["pveDeaths"] == 1
        assert stats["averageLevel"] == 200.0
        assert stats["topKillers"] == [
            {"name": "Villain", "kills": 2},
            {"name": "Thug", "kills": 1},
        ]
        assert sum(day["pvp"] + day["pve"] for day in stats["deathsByDay"]) == 3

    async def test_all_time_includes_old_deaths(self, dashboard, guild_setup, make_death):
        user, players = guild_setup
        await make_death(players["charlie"], hours_ago=24 * 40, type=DeathType.PVP, killers=["Villain"])

        assert (await dashboard.death_stats(user, "all"))["totalDeaths"] == 1
        assert (await dashboard.death_stats(user, "30d"))["totalDeaths"] == 0

    async def test_empty(self, dashboard, guild_setup):
        user, _ = guild_setup

        stats = await dashboard.death_stats(user)

        assert stats["totalDeaths"] == 0
        assert stats["averageLevel"] == 0
        assert stats["topKillers"] == []
        assert stats["deathsByDay"] == []

    async def test_user_without_guild(self, dashboard, make_user):
        user = await make_user(None)

        with pytest.raises(InvalidOperationError) as exc_info:
            await dashboard.death_stats(user)

        assert exc_info.value.public_message == "User not in a guild"


@pytest.mark.integration
@pytest.mark.database
class TestListMembers:
    async def test_paginated_by_level(self, dashboard, guild_setup):
        user, _ = guild_setup

        first = await dashboard.list_members(user, page=1, limit=2)
        second = await dashboard.list_members(user, page=2, limit=2)

        assert [m["name"] for m in first["members"]] == ["Alpha", "Bravo"]
        assert [m["name"] for m in second["members"]] == ["Charlie"]
        assert first["members"][0]["status"] == "online"
        assert first["pagination"]["total"] == 3
        assert first["pagination"]["totalPages"] == 2
        assert second["pagination"]["hasNext"] is False


@pytest.mark.integration
@pytest.mark.database
class TestMemberStats:
    async def test_counts(self, dashboard, guild_setup, make_player, make_death):
        # Arrange: the account's own character is "Knight Alpha"
        user, players = guild_setup
        me = await make_player(user.guild, "Knight Alpha")
        await make_death(me, hours_ago=48)
        await make_death(me, hours_ago=24 * 10)
        await make_death(players["bravo"], hours_ago=0.01)
        await make_death(players["charlie"], hours_ago=30)

        # Act
        stats = await dashboard.member_stats(user)

        # Assert
        assert stats == {
            "guildMembersOnline": 2,
            "enemiesOnline": 1,
            "myRecentDeaths": 1,
            "guildRecentDeaths": 1,
        }

    async def test_user_without_guild(self, dashboard, make_user):
        user = await make_user(None)

        with pytest.raises(InvalidOperationError):
            await dashboard.member_stats(user)


@pytest.mark.integration
@pytest.mark.database
class TestOnlineMonitoring:
    async def test_spans_configured_guilds(
        self, dashboard, guild_setup, make_guild, make_player, configure_guild
    ):
        # Arrange
        user, players = guild_setup
        ally = await make_guild("Blue Moon", "Secura", type=GuildType.ALLY, password=None)
        await configure_guild(user, ally, ConfigurationType.ALLY)
        await configure_guild(user, players["villain"].guild, ConfigurationType.ENEMY)
        await make_player(ally, "Healer", level=400, is_online=True)
        await make_player(ally, "Sleeper", level=500)
        await make_player(
            None, "Lurker", level=150, world="Secura", is_online=True,
            type=PlayerType.EXTERNAL_ENEMY,
        )
        stranger_guild = await make_guild("Bystanders", "Antica", password=None)
        await make_player(stranger_guild, "Stranger", level=600, is_online=True)

        # Act
        rows = await dashboard.online_monitoring(user)

        # Assert
        assert [(row["name"], row["type"]) for row in rows] == [
            ("Healer", "EXTERNAL_ALLY"),
            ("Alpha", "GUILD_MEMBER"),
            ("Villain", "EXTERNAL_ENEMY"),
            ("Bravo", "GUILD_MEMBER"),
            ("Lurker", "EXTERNAL_ENEMY"),
        ]
        assert rows[0]["guild"] == "Blue Moon"
        assert rows[-1]["guild"] == "Unknown"
        assert all(row["isOnline"] for row in rows)

    async def test_home_guild_only_without_configurations(self, dashboard, guild_setup):
        user, _ = guild_setup

        rows = await dashboard.online_monitoring(user)

        assert [row["name"] for row in rows] == ["Alpha", "Bravo"]


@pytest.mark.integration
@pytest.mark.database
class TestDeathLists:
    async def test_deaths_in_range_newest_first(self, dashboard, guild_setup, make_death):
        user, players = guild_setup
        await make_death(players["charlie"], hours_ago=5)
        await make_death(players["alpha"], hours_ago=1, killers=["Villain"], type=DeathType.PVP)
        await make_death(players["bravo"], hours_ago=24 * 3)
        await make_death(players["villain"], hours_ago=1)

        day = await dashboard.deaths(user, "24h")
        week = await dashboard.deaths(user)

        assert [row["playerName"] for row in day] == ["Alpha", "Charlie"]
        assert [row["playerName"] for row in week] == ["Alpha", "Charlie", "Bravo"]
        assert day[0]["guild"] == "Red Rose"
        assert day[0]["killers"] == ["Villain"]
        assert day[0]["type"] == "PVP"

    async def test_my_deaths_match_character_name(
        self, dashboard, guild_setup, make_player, make_death
    ):
        user, players = guild_setup
        me = await make_player(user.guild, "Knight Alpha")
        await make_death(me, hours_ago=24 * 40, level=80)
        await make_death(me, hours_ago=2, level=100)
        await make_death(players["alpha"], hours_ago=1)

        rows = await dashboard.my_deaths(user)

        assert [row["level"] for row in rows] == [100, 80]
        assert set(rows[0]) == {"id", "level", "type", "killers", "timestamp", "description"}

    async def test_user_without_guild(self, dashboard, make_user):
        user = await make_user(None)

        with pytest.raises(InvalidOperationError):
            await dashboard.deaths(user)
