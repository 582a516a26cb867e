"""
PaymentVerification - a submitted Tibia Coin transfer awaiting review.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guildwatch.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    str_enum,
    utc_now,
)
from guildwatch.database.models.enums import PlanId, VerificationStatus

if TYPE_CHECKING:
    from guildwatch.database.models.accounts.user import User


class PaymentVerification(Base, IdMixin, TimestampMixin):
    """
    Transfer proof submitted by a user.

    Schema-only:
    - user_id, subscription_id
    - payment_id: set once approved
    - plan, additional_worlds, amount (Tibia Coins)
    - from_character, to_character, transfer_timestamp, screenshot
    - status, submitted_at, reviewed_at, reviewed_by, admin_notes
    """

    __tablename__ = "payment_verifications"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
    )

    plan: Mapped[PlanId] = mapped_column(str_enum(PlanId), nullable=False)
    additional_worlds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    from_character: Mapped[str] = mapped_column(String(30), nullable=False)
    to_character: Mapped[str] = mapped_column(String(30), nullable=False)
    transfer_timestamp: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    screenshot: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[VerificationStatus] = mapped_column(
        str_enum(VerificationStatus),
        nullable=False,
        default=VerificationStatus.PENDING,
        index=True,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    reviewed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(
        "User", foreign_keys=[user_id], lazy="selectin"
    )
