"""
Accounts domain ORM models.

Exports:
- User
- WorldSubscription
- GuildConfiguration
"""

from .user import User
from .world_subscription import DEFAULT_MAX_GUILDS, WorldSubscription
from .guild_configuration import GuildConfiguration

__all__ = [
    "User",
    "WorldSubscription",
    "GuildConfiguration",
    "DEFAULT_MAX_GUILDS",
]
