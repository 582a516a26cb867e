"""
Death - append-only record of a character death.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
)
from guildwatch.database.models.enums import DeathType

if TYPE_CHECKING:
    from .player import Player


class Death(Base, IdMixin, TimestampMixin):
    """
    Character death.

    Schema-only:
    - player_id (FK to players, the victim)
    - timestamp, level at death
    - killers: ordered list of killer names as reported by the game
    - description: the game's free-text reason
    - type: PVP / PVE

    Rows are never updated after insert.
    """

    __tablename__ = "deaths"
    __table_args__ = (
        Index("ix_deaths_player_timestamp", "player_id", "timestamp"),
        Index("ix_deaths_timestamp", "timestamp"),
    )

    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    killers: Mapped[List[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[DeathType] = mapped_column(
        str_enum(DeathType), nullable=False, default=DeathType.PVE
    )

    player: Mapped["Player"] = relationship("Player", lazy="selectin")
