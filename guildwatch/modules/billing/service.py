"""
BillingService - Tibia Coin payment ledger
==========================================

Handles:
- Payment submission (creates a PENDING PaymentVerification)
- Admin approval: records a completed Payment and activates/extends the
  Subscription
- Admin rejection: records the reason; no Payment, Subscription untouched
- Subscription status lookup and pending-review listing
- Expiry sweep (ACTIVE past expires_at -> EXPIRED)

State machines:
- Subscription: PENDING_PAYMENT -> ACTIVE -> (CANCELLED | EXPIRED)
- PaymentVerification: PENDING -> (APPROVED | REJECTED)

Role checks (SUPER_ADMIN for review) happen at the HTTP boundary.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import update

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import (
    Payment,
    PaymentStatus,
    PaymentVerification,
    PlanId,
    Subscription,
    SubscriptionStatus,
    VerificationStatus,
)
from guildwatch.modules.shared.base_repository import BaseRepository
from guildwatch.modules.shared.base_service import BaseService
from guildwatch.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)

from .plans import get_plan

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from guildwatch.core.database.service import DatabaseService
    from guildwatch.database.models import User

RECENT_PAYMENTS_LIMIT = 5


@dataclass(frozen=True)
class TransferDetails:
    """Proof of an in-game Tibia Coin transfer."""

    from_character: str
    to_character: str
    timestamp: Optional[datetime] = None
    screenshot: Optional[str] = None


def payment_external_id(at: datetime, user_id: int) -> str:
    return f"TC_{int(at.timestamp() * 1000)}_{user_id}"


class BillingService(BaseService):
    def __init__(self, db: DatabaseService, logger: Logger) -> None:
        super().__init__(db, logger)
        self._subscription_repo = BaseRepository[Subscription](Subscription, self.log)
        self._payment_repo = BaseRepository[Payment](Payment, self.log)
        self._verification_repo = BaseRepository[PaymentVerification](
            PaymentVerification, self.log
        )

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit_payment(
        self,
        user: User,
        plan_id: PlanId,
        amount: int,
        additional_worlds: Optional[int],
        transfer: TransferDetails,
    ) -> Dict[str, Any]:
        """
        Record a transfer for admin review.

        Creates the user's Subscription in PENDING_PAYMENT when missing;
        an existing Subscription keeps its status.

        Raises:
            ValidationError: Amount does not match the plan price
        """
        plan = get_plan(plan_id)
        expected = plan.expected_tibia_coins(additional_worlds)
        if amount != expected:
            raise ValidationError(
                "amount",
                f"Invalid payment amount. Expected {expected} Tibia Coins",
            )
        units = plan.units(additional_worlds)

        async def _submit(session: AsyncSession) -> Dict[str, Any]:
            subscription = await self._subscription_repo.find_one_where(
                session, Subscription.user_id == user.id, for_update=True
            )
            if subscription is None:
                subscription = self._subscription_repo.add(
                    session,
                    Subscription(
                        user_id=user.id,
                        plan=plan_id,
                        status=SubscriptionStatus.PENDING_PAYMENT,
                        world_limit=plan.world_limit,
                        amount=plan.usd_total(additional_worlds),
                    ),
                )
                await session.flush()

            verification = self._verification_repo.add(
                session,
                PaymentVerification(
                    user_id=user.id,
                    subscription_id=subscription.id,
                    plan=plan_id,
                    additional_worlds=units if plan_id == PlanId.EXTENDED else 0,
                    amount=amount,
                    from_character=transfer.from_character,
                    to_character=transfer.to_character,
                    transfer_timestamp=transfer.timestamp,
                    screenshot=transfer.screenshot,
                    status=VerificationStatus.PENDING,
                    submitted_at=utc_now(),
                ),
            )
            await session.flush()
            return {
                "success": True,
                "verificationId": verification.id,
                "status": verification.status.value,
                "subscriptionStatus": subscription.status.value,
                "message": "Payment submitted successfully for verification",
            }

        result = await self.db.run_in_transaction(
            _submit,
            operation_name="billing.submit_payment",
            context={"user_id": user.id, "plan": plan_id.value},
        )
        self.log_operation(
            "billing.submit_payment",
            user_id=user.id,
            plan=plan_id.value,
            amount=amount,
            verification_id=result["verificationId"],
        )
        return result

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    async def _pending_verification(
        self, session: AsyncSession, verification_id: int, action: str
    ) -> PaymentVerification:
        verification = await self._verification_repo.get_for_update(
            session, verification_id
        )
        if verification is None:
            raise NotFoundError("Payment verification", verification_id)
        if verification.status != VerificationStatus.PENDING:
            raise InvalidOperationError(action, "Verification already processed")
        return verification

    async def approve_payment(
        self, admin: User, verification_id: int, notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Approve a PENDING verification.

        Creates a completed Payment and activates the Subscription, extending
        expiry by the plan duration from max(now, current expiry).

        Raises:
            NotFoundError: Unknown verification
            InvalidOperationError: Verification is not PENDING
        """

        async def _approve(session: AsyncSession) -> Dict[str, Any]:
            verification = await self._pending_verification(
                session, verification_id, "approve_payment"
            )
            subscription = await self._subscription_repo.get_for_update(
                session, verification.subscription_id
            )
            if subscription is None:
                raise NotFoundError("Subscription", verification.subscription_id)

            plan = get_plan(verification.plan)
            now = utc_now()

            payment = self._payment_repo.add(
                session,
                Payment(
                    subscription_id=subscription.id,
                    amount=plan.usd_total(verification.additional_worlds),
                    currency="USD",
                    tibia_coins=verification.amount,
                    status=PaymentStatus.COMPLETED,
                    payment_method="tibia_coins",
                    external_id=payment_external_id(now, verification.user_id),
                    processed_at=now,
                ),
            )
            await session.flush()

            verification.status = VerificationStatus.APPROVED
            verification.reviewed_at = now
            verification.reviewed_by = admin.id
            verification.admin_notes = notes
            verification.payment_id = payment.id

            base = max(now, subscription.expires_at or now)
            subscription.expires_at = base + timedelta(days=plan.duration_days)
            subscription.next_billing_date = subscription.expires_at
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.last_payment_at = now
            if verification.plan == PlanId.EXTENDED:
                subscription.world_limit += max(verification.additional_worlds, 1)
            else:
                subscription.world_limit = max(subscription.world_limit, plan.world_limit)

            return {
                "success": True,
                "verificationId": verification.id,
                "paymentId": payment.external_id,
                "subscriptionStatus": subscription.status.value,
                "expiresAt": subscription.expires_at.isoformat(),
                "worldLimit": subscription.world_limit,
                "message": "Payment approved successfully",
            }

        result = await self.db.run_in_transaction(
            _approve,
            operation_name="billing.approve_payment",
            context={"verification_id": verification_id, "admin_id": admin.id},
        )
        self.log_operation(
            "billing.approve_payment",
            admin_id=admin.id,
            verification_id=verification_id,
            payment_id=result["paymentId"],
        )
        return result

    async def reject_payment(
        self, admin: User, verification_id: int, reason: str
    ) -> Dict[str, Any]:
        """
        Reject a PENDING verification, keeping ``reason`` as admin notes.

        Raises:
            ValidationError: Empty reason
            NotFoundError: Unknown verification
            InvalidOperationError: Verification is not PENDING
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "Rejection reason is required")

        async def _reject(session: AsyncSession) -> Dict[str, Any]:
            verification = await self._pending_verification(
                session, verification_id, "reject_payment"
            )
            verification.status = VerificationStatus.REJECTED
            verification.reviewed_at = utc_now()
            verification.reviewed_by = admin.id
            verification.admin_notes = reason
            return {
                "success": True,
                "verificationId": verification.id,
                "status": verification.status.value,
                "message": "Payment rejected",
            }

        result = await self.db.run_in_transaction(
            _reject,
            operation_name="billing.reject_payment",
            context={"verification_id": verification_id, "admin_id": admin.id},
        )
        self.log_operation(
            "billing.reject_payment",
            admin_id=admin.id,
            verification_id=verification_id,
            reason=reason,
        )
        return result

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_subscription(self, user: User) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            subscription = await self._subscription_repo.find_one_where(
                session, Subscription.user_id == user.id
            )
            if subscription is None:
                return {
                    "status": "inactive",
                    "plan": None,
                    "worldLimit": 0,
                    "expiresAt": None,
                    "isExpired": True,
                    "daysRemaining": 0,
                    "recentPayments": [],
                }

            payments = await self._payment_repo.find_many_where(
                session,
                Payment.subscription_id == subscription.id,
                order_by=[Payment.created_at.desc(), Payment.id.desc()],
                limit=RECENT_PAYMENTS_LIMIT,
            )

        now = utc_now()
        expires_at = subscription.expires_at
        is_expired = expires_at is None or expires_at < now
        days_remaining = (
            0
            if is_expired
            else math.ceil((expires_at - now).total_seconds() / 86400)
        )

        return {
            "status": subscription.status.value,
            "plan": subscription.plan.value,
            "worldLimit": subscription.world_limit,
            "expiresAt": expires_at.isoformat() if expires_at else None,
            "isExpired": is_expired,
            "daysRemaining": days_remaining,
            "recentPayments": [
                {
                    "id": payment.external_id,
                    "amount": payment.tibia_coins,
                    "usdAmount": payment.amount,
                    "status": payment.status.value,
                    "createdAt": payment.created_at.isoformat(),
                    "processedAt": (
                        payment.processed_at.isoformat()
                        if payment.processed_at
                        else None
                    ),
                }
                for payment in payments
            ],
        }

    async def list_pending_verifications(self) -> List[Dict[str, Any]]:
        async with self.db.get_session() as session:
            verifications = await self._verification_repo.find_many_where(
                session,
                PaymentVerification.status == VerificationStatus.PENDING,
                order_by=[PaymentVerification.submitted_at, PaymentVerification.id],
            )
            return [self._verification_row(v) for v in verifications]

    @staticmethod
    def _verification_row(verification: PaymentVerification) -> Dict[str, Any]:
        return {
            "id": verification.id,
            "user": {
                "id": verification.user.id,
                "characterName": verification.user.character_name,
                "world": verification.user.world,
            },
            "plan": verification.plan.value,
            "additionalWorlds": verification.additional_worlds,
            "amount": verification.amount,
            "fromCharacter": verification.from_character,
            "toCharacter": verification.to_character,
            "transferTimestamp": (
                verification.transfer_timestamp.isoformat()
                if verification.transfer_timestamp
                else None
            ),
            "screenshot": verification.screenshot,
            "submittedAt": verification.submitted_at.isoformat(),
            "status": verification.status.value,
        }

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def process_expired_subscriptions(self) -> int:
        """Move ACTIVE subscriptions past ``expires_at`` to EXPIRED."""

        async def _expire(session: AsyncSession) -> int:
            now = utc_now()
            result = await session.execute(
                update(Subscription)
                .where(
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.expires_at < now,
                )
                .values(status=SubscriptionStatus.EXPIRED, updated_at=now)
            )
            return result.rowcount or 0

        expired = await self.db.run_in_transaction(
            _expire, operation_name="billing.process_expired_subscriptions"
        )
        self.log.info(
            "Expired subscriptions processed", extra={"expired": expired}
        )
        return expired
