"""
Subscription - an account's paid plan.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
)
from guildwatch.database.models.enums import PlanId, SubscriptionStatus


class Subscription(Base, IdMixin, TimestampMixin):
    """
    One subscription per user.

    Schema-only:
    - user_id (unique)
    - plan, status
    - world_limit: how many worlds the account may monitor
    - amount: monthly price in USD
    - expires_at, next_billing_date, last_payment_at
    """

    __tablename__ = "subscriptions"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    plan: Mapped[PlanId] = mapped_column(
        str_enum(PlanId), nullable=False, default=PlanId.BASIC
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        str_enum(SubscriptionStatus),
        nullable=False,
        default=SubscriptionStatus.PENDING_PAYMENT,
        index=True,
    )
    world_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False, default=0.0
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    next_billing_date: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    last_payment_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
