"""Accounts, sessions and monitoring scope."""

from .monitoring import MonitoringService, guild_type_for
from .scope import (
    FRIENDLY_TYPES,
    active_configurations,
    active_worlds,
    configured_guilds,
    enemy_guild_ids,
    guild_ids_by_type,
    monitored_guild_ids,
)
from .security import check_password, create_token, hash_password, verify_token
from .service import AccountService, user_to_dict

__all__ = [
    "AccountService",
    "MonitoringService",
    "guild_type_for",
    "user_to_dict",
    "FRIENDLY_TYPES",
    "active_configurations",
    "active_worlds",
    "configured_guilds",
    "enemy_guild_ids",
    "guild_ids_by_type",
    "monitored_guild_ids",
    "check_password",
    "create_token",
    "hash_password",
    "verify_token",
]
