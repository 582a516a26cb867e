"""
Player - a Tibia character seen in a synced roster.
Pure schema. Rows are written only by roster reconciliation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
    utc_now,
)
from guildwatch.database.models.enums import PlayerType

if TYPE_CHECKING:
    from .guild import Guild


class Player(Base, IdMixin, TimestampMixin):
    """
    Tracked character.

    Schema-only:
    - name + world (unique pair)
    - level, vocation (normalized base class)
    - is_online, last_seen
    - type: member of a monitored guild or an external character
    - guild_id: guild the character was last synced from
    """

    __tablename__ = "players"
    __table_args__ = (
        UniqueConstraint("name", "world", name="uq_players_name_world"),
        Index("ix_players_guild_type", "guild_id", "type"),
        Index("ix_players_world_online", "world", "is_online"),
    )

    name: Mapped[str] = mapped_column(String(30), nullable=False)
    world: Mapped[str] = mapped_column(String(30), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    vocation: Mapped[str] = mapped_column(String(30), nullable=False, default="None")

    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now
    )

    type: Mapped[PlayerType] = mapped_column(
        str_enum(PlayerType), nullable=False, default=PlayerType.GUILD_MEMBER
    )

    guild_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("guilds.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    guild: Mapped[Optional["Guild"]] = relationship("Guild", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Player id={self.id} name={self.name!r} world={self.world!r}>"
