"""
Business metrics for the admin dashboard.

Read-only aggregation over users, subscriptions, verifications and payments.
Each aggregate runs on its own session so they can be gathered concurrently.

Customers are accounts with role GUILD_ADMIN or GUILD_MEMBER; churn is the
share of customers without an ACTIVE subscription.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import aliased

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import (
    Payment,
    PaymentStatus,
    PaymentVerification,
    Subscription,
    SubscriptionStatus,
    User,
    UserRole,
    VerificationStatus,
)
from guildwatch.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import ColumnElement

MONTH = timedelta(days=30)
QUARTER = timedelta(days=90)
YEAR = timedelta(days=365)

CUSTOMER_ROLES = (UserRole.GUILD_ADMIN, UserRole.GUILD_MEMBER)


class BusinessMetricsService(BaseService):
    async def _count(self, model: Any, *conditions: ColumnElement[bool]) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.count()).select_from(model).where(*conditions)
            )
            return int(result.scalar_one())

    async def _revenue(
        self, since: datetime, until: Optional[datetime] = None
    ) -> float:
        conditions = [
            Payment.status == PaymentStatus.COMPLETED,
            Payment.created_at >= since,
        ]
        if until is not None:
            conditions.append(Payment.created_at < until)

        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(Payment.amount), 0)).where(*conditions)
            )
            return float(result.scalar_one() or 0)

    async def compute(self) -> Dict[str, Any]:
        now = utc_now()

        (
            total_users,
            active_subscriptions,
            pending_payments,
            monthly_revenue,
            previous_month_revenue,
            quarterly_revenue,
            yearly_revenue,
        ) = await asyncio.gather(
            self._count(User, User.role.in_(CUSTOMER_ROLES)),
            self._count(Subscription, Subscription.status == SubscriptionStatus.ACTIVE),
            self._count(
                PaymentVerification,
                PaymentVerification.status == VerificationStatus.PENDING,
            ),
            self._revenue(now - MONTH),
            self._revenue(now - 2 * MONTH, now - MONTH),
            self._revenue(now - QUARTER),
            self._revenue(now - YEAR),
        )

        churn_rate = (
            max(total_users - active_subscriptions, 0) / total_users
            if total_users
            else 0.0
        )
        growth_rate = (
            (monthly_revenue - previous_month_revenue) / previous_month_revenue * 100
            if previous_month_revenue
            else 0.0
        )
        arpu = monthly_revenue / active_subscriptions if active_subscriptions else 0.0

        metrics = {
            "totalUsers": total_users,
            "activeSubscriptions": active_subscriptions,
            "pendingPayments": pending_payments,
            "monthlyRevenue": round(monthly_revenue, 2),
            "quarterlyRevenue": round(quarterly_revenue, 2),
            "yearlyRevenue": round(yearly_revenue, 2),
            "churnRate": round(churn_rate, 4),
            "growthRate": round(growth_rate, 2),
            "averageRevenuePerUser": round(arpu, 2),
        }
        self.log.debug("Business metrics computed", extra=metrics)
        return metrics

    async def list_customers(self) -> List[Dict[str, Any]]:
        """
        Every customer with subscription state, completed-payment revenue and
        the number of payment verifications they submitted.

        Ordered by subscription status descending, then newest account first.
        Customers without a subscription come last.
        """
        paid = aliased(Subscription)
        revenue = (
            select(func.coalesce(func.sum(Payment.amount), 0))
            .join(paid, Payment.subscription_id == paid.id)
            .where(paid.user_id == User.id, Payment.status == PaymentStatus.COMPLETED)
            .correlate(User)
            .scalar_subquery()
        )
        verifications = (
            select(func.count(PaymentVerification.id))
            .where(PaymentVerification.user_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )

        async with self.db.get_session() as session:
            result = await session.execute(
                select(User, Subscription, revenue, verifications)
                .outerjoin(Subscription, Subscription.user_id == User.id)
                .where(User.role.in_(CUSTOMER_ROLES))
                .order_by(
                    Subscription.status.desc().nulls_last(),
                    User.created_at.desc(),
                    User.id.desc(),
                )
            )
            rows = result.all()

        customers = [
            _customer_row(user, subscription, float(total or 0), int(count or 0))
            for user, subscription, total, count in rows
        ]
        self.log.debug("Customers listed", extra={"customers": len(customers)})
        return customers


def _customer_row(
    user: User,
    subscription: Optional[Subscription],
    revenue: float,
    payment_count: int,
) -> Dict[str, Any]:
    last_active = user.last_login_at or user.updated_at
    return {
        "id": user.id,
        "characterName": user.character_name,
        "guildName": user.guild.name if user.guild is not None else "No Guild",
        "world": user.guild.world if user.guild is not None else user.world,
        "subscriptionPlan": subscription.plan.value if subscription else "None",
        "status": subscription.status.value if subscription else "Inactive",
        "revenue": round(revenue, 2),
        "joinDate": user.created_at.isoformat(),
        "lastActive": last_active.isoformat(),
        "expiresAt": (
            subscription.expires_at.isoformat()
            if subscription is not None and subscription.expires_at is not None
            else None
        ),
        "paymentCount": payment_count,
    }
