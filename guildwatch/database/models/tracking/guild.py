"""
Guild - a Tibia guild tracked on one world.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
)
from guildwatch.database.models.enums import GuildType


class Guild(Base, IdMixin, TimestampMixin):
    """
    Guild as known to GuildWatch.

    Schema-only:
    - name + world (unique pair)
    - type (MAIN / ALLY / ENEMY / FRIEND)
    - password_hash: bcrypt hash guarding account login, MAIN guilds only
    - last_sync_at: set by roster reconciliation
    """

    __tablename__ = "guilds"
    __table_args__ = (
        UniqueConstraint("name", "world", name="uq_guilds_name_world"),
        Index("ix_guilds_world_type", "world", "type"),
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    world: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    type: Mapped[GuildType] = mapped_column(
        str_enum(GuildType), nullable=False, default=GuildType.MAIN
    )

    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Guild id={self.id} name={self.name!r} world={self.world!r}>"
