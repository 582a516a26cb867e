"""
Plain snapshots parsed from TibiaData v4 responses.

Each ``from_payload`` raises ``KeyError`` / ``TypeError`` / ``ValueError`` on
malformed input; the client treats those as parse failures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .vocations import normalize_vocation


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp ("...Z" allowed) into an aware UTC datetime."""
    value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class RosterMember:
    name: str
    title: str
    rank: str
    vocation: str
    level: int
    joined: str
    status: str

    @property
    def is_online(self) -> bool:
        return self.status == "online"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> RosterMember:
        return cls(
            name=str(data["name"]),
            title=str(data.get("title") or ""),
            rank=str(data.get("rank") or ""),
            vocation=normalize_vocation(str(data.get("vocation") or "None")),
            level=int(data.get("level") or 0),
            joined=str(data.get("joined") or ""),
            status=str(data.get("status") or "offline"),
        )


@dataclass(frozen=True)
class RosterSnapshot:
    """Point-in-time member list of a guild."""

    name: str
    world: str
    members: List[RosterMember] = field(default_factory=list)
    online_count: int = 0
    offline_count: int = 0

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> RosterSnapshot:
        members = [RosterMember.from_payload(m) for m in data.get("members") or []]
        return cls(
            name=str(data["name"]),
            world=str(data["world"]),
            members=members,
            online_count=int(data.get("players_online") or 0),
            offline_count=int(data.get("players_offline") or 0),
        )


@dataclass(frozen=True)
class GuildSummary:
    name: str
    description: str
    logo_url: str

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> GuildSummary:
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            logo_url=str(data.get("logo_url") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "logo_url": self.logo_url,
        }


@dataclass(frozen=True)
class DeathKiller:
    name: str
    player: bool
    summon: str

    @property
    def is_player_kill(self) -> bool:
        """A player killer that is not acting through a summon."""
        return self.player and not self.summon

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> DeathKiller:
        return cls(
            name=str(data["name"]),
            player=bool(data.get("player")),
            summon=str(data.get("summon") or ""),
        )


@dataclass(frozen=True)
class CharacterDeath:
    date: datetime
    level: int
    killers: List[DeathKiller]
    reason: str

    @property
    def is_pvp(self) -> bool:
        return any(killer.is_player_kill for killer in self.killers)

    @property
    def killer_names(self) -> List[str]:
        return [killer.name for killer in self.killers]

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> CharacterDeath:
        raw_date = data.get("time") or data["date"]
        return cls(
            date=parse_timestamp(str(raw_date)),
            level=int(data.get("level") or 0),
            killers=[DeathKiller.from_payload(k) for k in data.get("killers") or []],
            reason=str(data.get("reason") or ""),
        )


@dataclass(frozen=True)
class CharacterSnapshot:
    name: str
    world: str
    level: int
    vocation: str
    guild_name: Optional[str]
    deaths: List[CharacterDeath] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> CharacterSnapshot:
        # v4 nests the profile under character.character
        profile = data.get("character") or data
        guild = profile.get("guild") or {}
        return cls(
            name=str(profile["name"]),
            world=str(profile["world"]),
            level=int(profile.get("level") or 0),
            vocation=normalize_vocation(str(profile.get("vocation") or "None")),
            guild_name=guild.get("name") or None,
            deaths=[CharacterDeath.from_payload(d) for d in data.get("deaths") or []],
        )
