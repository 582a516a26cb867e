"""Roster reconciliation from TibiaData into the Player table."""

from .service import GuildSyncResult, RosterService, target_player_type

__all__ = ["RosterService", "GuildSyncResult", "target_player_type"]
