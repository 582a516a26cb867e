"""
WorldSubscription - a world an account monitors.
Pure schema.
"""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from guildwatch.core.database.base import Base, IdMixin, TimestampMixin

DEFAULT_MAX_GUILDS = 10


class WorldSubscription(Base, IdMixin, TimestampMixin):
    """
    Monitored world.

    Schema-only:
    - user_id + world (unique pair)
    - is_active
    - max_guilds: cap on attached guild configurations
    """

    __tablename__ = "world_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "world", name="uq_world_subscriptions_user_world"),
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    world: Mapped[str] = mapped_column(String(30), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_guilds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_GUILDS
    )
