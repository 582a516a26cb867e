"""
GuildConfiguration - links a WorldSubscription to a tracked Guild.
Pure schema.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildwatch.core.database.base import Base, IdMixin, TimestampMixin, str_enum
from guildwatch.database.models.enums import ConfigurationType

if TYPE_CHECKING:
    from guildwatch.database.models.tracking.guild import Guild

    from .world_subscription import WorldSubscription


class GuildConfiguration(Base, IdMixin, TimestampMixin):
    """
    Monitoring relationship between an account's world and a guild.

    Schema-only:
    - world_subscription_id + guild_id (unique pair)
    - type: MAIN / ALLY / ENEMY
    - priority: display order within the subscription
    - is_active
    """

    __tablename__ = "guild_configurations"
    __table_args__ = (
        UniqueConstraint(
            "world_subscription_id",
            "guild_id",
            name="uq_guild_configurations_subscription_guild",
        ),
        Index("ix_guild_configurations_guild_id", "guild_id"),
    )

    world_subscription_id: Mapped[int] = mapped_column(
        ForeignKey("world_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    guild_id: Mapped[int] = mapped_column(
        ForeignKey("guilds.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[ConfigurationType] = mapped_column(
        str_enum(ConfigurationType), nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    guild: Mapped["Guild"] = relationship("Guild", lazy="selectin")
    world_subscription: Mapped["WorldSubscription"] = relationship(
        "WorldSubscription", lazy="selectin"
    )
