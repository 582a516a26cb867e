"""
User - account holder, identified by a Tibia character on a world.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
)
from guildwatch.database.models.enums import UserRole

if TYPE_CHECKING:
    from guildwatch.database.models.tracking.guild import Guild


class User(Base, IdMixin, TimestampMixin):
    """
    Account row.

    Schema-only:
    - character_name + world (unique pair)
    - role
    - guild_id: the account's own (MAIN) guild
    - last_login_at
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("character_name", "world", name="uq_users_character_world"),
    )

    character_name: Mapped[str] = mapped_column(String(30), nullable=False)
    world: Mapped[str] = mapped_column(String(30), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        str_enum(UserRole), nullable=False, default=UserRole.GUILD_MEMBER
    )

    guild_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("guilds.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )

    guild: Mapped[Optional["Guild"]] = relationship("Guild", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} character={self.character_name!r} "
            f"world={self.world!r} role={self.role.value}>"
        )
