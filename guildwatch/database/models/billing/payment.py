"""
Payment - a settled charge against a subscription.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
)
from guildwatch.database.models.enums import PaymentStatus


class Payment(Base, IdMixin, TimestampMixin):
    """
    Payment row, created when an admin approves a verification.

    Schema-only:
    - subscription_id
    - amount (USD), currency, tibia_coins
    - status, payment_method
    - external_id (unique reference)
    - processed_at
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_status_processed_at", "status", "processed_at"),
    )

    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    tibia_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[PaymentStatus] = mapped_column(
        str_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    payment_method: Mapped[str] = mapped_column(
        String(30), nullable=False, default="tibia_coins"
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
