"""
TibiaData integration: HTTP client, response snapshots and vocation names.
"""

from .client import TibiaDataClient
from .models import (
    CharacterDeath,
    CharacterSnapshot,
    DeathKiller,
    GuildSummary,
    RosterMember,
    RosterSnapshot,
)
from .vocations import VOCATION_MAP, normalize_vocation

__all__ = [
    "TibiaDataClient",
    "RosterSnapshot",
    "RosterMember",
    "GuildSummary",
    "CharacterSnapshot",
    "CharacterDeath",
    "DeathKiller",
    "normalize_vocation",
    "VOCATION_MAP",
]
