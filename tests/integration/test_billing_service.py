"""
Integration tests for the Tibia Coin billing ledger.

Covers the submit / approve / reject lifecycle, subscription reads, expiry
processing and business metrics.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from guildwatch.core.database.base import utc_now
from guildwatch.database.models import (
    Payment,
    PaymentStatus,
    PaymentVerification,
    PlanId,
    Subscription,
    SubscriptionStatus,
    UserRole,
    VerificationStatus,
)
from guildwatch.modules.billing import BillingService, BusinessMetricsService, TransferDetails
from guildwatch.modules.shared import InvalidOperationError, NotFoundError, ValidationError

TRANSFER = TransferDetails(from_character="Knight Alpha", to_character="GuildWatch Bank")


@pytest.fixture
def billing(db, logger):
    return BillingService(db, logger)


@pytest.fixture
async def customer(make_guild, make_user):
    return await make_user(await make_guild())


@pytest.fixture
async def admin(make_user):
    return await make_user(None, character_name="Root", world="Antica", role=UserRole.SUPER_ADMIN)


async def _subscription(db, user_id):
    async with db.get_session() as session:
        result = await session.execute(
            select(Subscription).where(Subscription.user_id == user_id)
        )
        return result.scalar_one_or_none()


async def _verification(db, verification_id):
    async with db.get_session() as session:
        return await session.get(PaymentVerification, verification_id)


async def _payment_count(db):
    async with db.get_session() as session:
        return await session.scalar(select(func.count(Payment.id)))


@pytest.mark.integration
@pytest.mark.database
class TestSubmitPayment:
    async def test_creates_pending_verification_and_subscription(self, db, billing, customer):
        # Act
        result = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)

        # Assert
        assert result["success"] is True
        assert result["status"] == "PENDING"
        assert result["subscriptionStatus"] == "PENDING_PAYMENT"

        verification = await _verification(db, result["verificationId"])
        assert verification.status == VerificationStatus.PENDING
        assert verification.amount == 750
        assert verification.from_character == "Knight Alpha"
        assert verification.additional_worlds == 0

        subscription = await _subscription(db, customer.id)
        assert subscription.status == SubscriptionStatus.PENDING_PAYMENT
        assert subscription.world_limit == 1

    async def test_wrong_amount_rejected(self, db, billing, customer):
        with pytest.raises(ValidationError) as exc_info:
            await billing.submit_payment(customer, PlanId.BASIC, 700, None, TRANSFER)

        assert exc_info.value.public_message == (
            "Invalid payment amount. Expected 750 Tibia Coins"
        )
        assert await _subscription(db, customer.id) is None

    async def test_extended_amount_scales_with_worlds(self, db, billing, customer):
        with pytest.raises(ValidationError):
            await billing.submit_payment(customer, PlanId.EXTENDED, 750, 3, TRANSFER)

        result = await billing.submit_payment(customer, PlanId.EXTENDED, 2250, 3, TRANSFER)

        verification = await _verification(db, result["verificationId"])
        assert verification.additional_worlds == 3

    async def test_existing_subscription_reused(self, db, billing, customer):
        first = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        second = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)

        one = await _verification(db, first["verificationId"])
        two = await _verification(db, second["verificationId"])
        assert one.subscription_id == two.subscription_id


@pytest.mark.integration
@pytest.mark.database
class TestReview:
    """Approve and reject flows."""

    async def test_approve_activates_subscription(self, db, billing, customer, admin):
        # Arrange
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        before = utc_now()

        # Act
        result = await billing.approve_payment(admin, submitted["verificationId"], "looks good")

        # Assert
        assert result["subscriptionStatus"] == "ACTIVE"
        assert result["paymentId"].startswith("TC_")
        assert result["paymentId"].endswith(f"_{customer.id}")

        subscription = await _subscription(db, customer.id)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.expires_at >= before + timedelta(days=30)
        assert subscription.next_billing_date == subscription.expires_at
        assert subscription.last_payment_at >= before

        verification = await _verification(db, submitted["verificationId"])
        assert verification.status == VerificationStatus.APPROVED
        assert verification.reviewed_by == admin.id
        assert verification.admin_notes == "looks good"
        assert verification.payment_id is not None

        async with db.get_session() as session:
            payment = await session.get(Payment, verification.payment_id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.tibia_coins == 750
        assert payment.amount == 20.0
        assert payment.currency == "USD"

    async def test_reject_keeps_subscription_unchanged(self, db, billing, customer, admin):
        # Arrange: one approved payment, then a second pending one
        first = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, first["verificationId"])
        second = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        before = await _subscription(db, customer.id)
        payments_before = await _payment_count(db)

        # Act
        result = await billing.reject_payment(admin, second["verificationId"], "invalid proof")

        # Assert
        assert result["status"] == "REJECTED"
        verification = await _verification(db, second["verificationId"])
        assert verification.status == VerificationStatus.REJECTED
        assert verification.admin_notes == "invalid proof"
        assert verification.payment_id is None
        assert await _payment_count(db) == payments_before

        after = await _subscription(db, customer.id)
        assert after.status == before.status == SubscriptionStatus.ACTIVE
        assert after.expires_at == before.expires_at

    async def test_reject_requires_reason(self, billing, customer, admin):
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)

        with pytest.raises(ValidationError):
            await billing.reject_payment(admin, submitted["verificationId"], "   ")

    async def test_processed_verification_cannot_be_reviewed_again(
        self, billing, customer, admin
    ):
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.reject_payment(admin, submitted["verificationId"], "invalid proof")

        with pytest.raises(InvalidOperationError) as exc_info:
            await billing.approve_payment(admin, submitted["verificationId"])

        assert exc_info.value.public_message == "Verification already processed"

    async def test_unknown_verification(self, billing, admin):
        with pytest.raises(NotFoundError):
            await billing.approve_payment(admin, 12345)

    async def test_renewal_extends_from_current_expiry(self, db, billing, customer, admin):
        first = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, first["verificationId"])
        expiry = (await _subscription(db, customer.id)).expires_at

        second = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, second["verificationId"])

        renewed = await _subscription(db, customer.id)
        assert renewed.expires_at == expiry + timedelta(days=30)
        assert renewed.world_limit == 1

    async def test_extended_raises_world_limit(self, db, billing, customer, admin):
        basic = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, basic["verificationId"])

        extended = await billing.submit_payment(customer, PlanId.EXTENDED, 1500, 2, TRANSFER)
        result = await billing.approve_payment(admin, extended["verificationId"])

        assert result["worldLimit"] == 3


@pytest.mark.integration
@pytest.mark.database
class TestSubscriptionReads:
    async def test_without_subscription(self, billing, customer):
        result = await billing.get_subscription(customer)

        assert result["status"] == "inactive"
        assert result["worldLimit"] == 0
        assert result["isExpired"] is True
        assert result["recentPayments"] == []

    async def test_active_subscription(self, billing, customer, admin):
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        approved = await billing.approve_payment(admin, submitted["verificationId"])

        result = await billing.get_subscription(customer)

        assert result["status"] == "ACTIVE"
        assert result["isExpired"] is False
        assert result["daysRemaining"] == 30
        assert [p["id"] for p in result["recentPayments"]] == [approved["paymentId"]]
        assert result["recentPayments"][0]["amount"] == 750

    async def test_pending_list_includes_user(self, billing, customer):
        await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)

        pending = await billing.list_pending_verifications()

        assert len(pending) == 1
        assert pending[0]["user"]["characterName"] == "Knight Alpha"

    async def test_pending_list_excludes_reviewed(self, billing, customer, admin):
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])

        assert await billing.list_pending_verifications() == []


@pytest.mark.integration
@pytest.mark.database
class TestExpiry:
    async def test_lapsed_active_subscriptions_expire(self, db, billing, customer, admin):
        # Arrange
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])
        async with db.get_transaction() as session:
            subscription = (
                await session.execute(
                    select(Subscription).where(Subscription.user_id == customer.id)
                )
            ).scalar_one()
            subscription.expires_at = utc_now() - timedelta(minutes=1)

        # Act
        expired = await billing.process_expired_subscriptions()

        # Assert
        assert expired == 1
        assert (await _subscription(db, customer.id)).status == SubscriptionStatus.EXPIRED
        assert await billing.process_expired_subscriptions() == 0

    async def test_current_subscriptions_untouched(self, billing, customer, admin):
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])

        assert await billing.process_expired_subscriptions() == 0


@pytest.mark.integration
@pytest.mark.database
class TestBusinessMetrics:
    async def test_revenue_and_subscription_counts(
        self, db, logger, billing, customer, admin, make_user
    ):
        # Arrange
        other = await make_user(None, character_name="Druid Beta", role=UserRole.GUILD_MEMBER)
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])
        await billing.submit_payment(other, PlanId.BASIC, 750, None, TRANSFER)

        # Act
        metrics = await BusinessMetricsService(db, logger).compute()

        # Assert
        assert metrics["totalUsers"] == 2
        assert metrics["activeSubscriptions"] == 1
        assert metrics["monthlyRevenue"] == 20.0
        assert metrics["churnRate"] == 0.5
        assert metrics["averageRevenuePerUser"] == 20.0

    async def test_churn_counts_customers_without_subscription(
        self, db, logger, billing, customer, admin, make_user
    ):
        # Arrange: three customers, only one ever paid
        await make_user(None, character_name="Druid Beta", role=UserRole.GUILD_MEMBER)
        await make_user(None, character_name="Sorcerer Gamma", role=UserRole.GUILD_MEMBER)
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])

        # Act
        metrics = await BusinessMetricsService(db, logger).compute()

        # Assert
        assert metrics["totalUsers"] == 3
        assert metrics["activeSubscriptions"] == 1
        assert metrics["churnRate"] == pytest.approx(2 / 3, abs=1e-4)

    async def test_no_customers(self, db, logger, admin):
        metrics = await BusinessMetricsService(db, logger).compute()

        assert metrics["totalUsers"] == 0
        assert metrics["churnRate"] == 0.0


@pytest.mark.integration
@pytest.mark.database
class TestListCustomers:
    async def test_subscription_revenue_and_verifications(
        self, db, logger, billing, customer, admin, make_user
    ):
        # Arrange
        beta = await make_user(None, character_name="Druid Beta", role=UserRole.GUILD_MEMBER)
        await make_user(None, character_name="Sorcerer Gamma", role=UserRole.GUILD_MEMBER)
        submitted = await billing.submit_payment(customer, PlanId.BASIC, 750, None, TRANSFER)
        await billing.approve_payment(admin, submitted["verificationId"])
        await billing.submit_payment(beta, PlanId.BASIC, 750, None, TRANSFER)

        # Act
        rows = await BusinessMetricsService(db, logger).list_customers()

        # Assert: the super admin is not a customer; no subscription sorts last
        assert [row["characterName"] for row in rows][-1] == "Sorcerer Gamma"
        by_name = {row["characterName"]: row for row in rows}
        assert set(by_name) == {"Knight Alpha", "Druid Beta", "Sorcerer Gamma"}

        alpha = by_name["Knight Alpha"]
        assert (alpha["status"], alpha["subscriptionPlan"]) == ("ACTIVE", "BASIC")
        assert alpha["revenue"] == 20.0
        assert alpha["paymentCount"] == 1
        assert alpha["guildName"] == "Red Rose"
        assert alpha["expiresAt"] is not None

        assert by_name["Druid Beta"]["status"] == "PENDING_PAYMENT"
        assert by_name["Druid Beta"]["revenue"] == 0.0

        gamma = by_name["Sorcerer Gamma"]
        assert gamma == {
            **gamma,
            "guildName": "No Guild",
            "world": "Antica",
            "subscriptionPlan": "None",
            "status": "Inactive",
            "revenue": 0.0,
            "expiresAt": None,
            "paymentCount": 0,
        }
