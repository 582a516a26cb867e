"""
Database Models Package
========================

SQLAlchemy ORM models for GuildWatch, organized by domain.

Conventions:
- Schema-only, no business logic
- Mapped[] syntax with mapped_column()
- Every model inherits IdMixin and TimestampMixin
- Timestamps use UTCDateTime
- Explicit foreign keys with CASCADE / SET NULL rules

Domain Organization:
--------------------
- tracking: Guilds, players and deaths mirrored from the game
- accounts: Users, monitored worlds and guild configurations
- billing: Subscriptions, payments and transfer verifications
- enums: Shared enumerations
"""

from guildwatch.core.database.base import Base

from .tracking import Death, Guild, Player
from .accounts import DEFAULT_MAX_GUILDS, GuildConfiguration, User, WorldSubscription
from .billing import Payment, PaymentVerification, Subscription
from .enums import (
    ConfigurationType,
    DeathType,
    GuildType,
    PaymentStatus,
    PlanId,
    PlayerType,
    SubscriptionStatus,
    UserRole,
    VerificationStatus,
)

__all__ = [
    "Base",
    # Tracking
    "Guild",
    "Player",
    "Death",
    # Accounts
    "User",
    "WorldSubscription",
    "GuildConfiguration",
    "DEFAULT_MAX_GUILDS",
    # Billing
    "Subscription",
    "Payment",
    "PaymentVerification",
    # Enums
    "GuildType",
    "PlayerType",
    "UserRole",
    "ConfigurationType",
    "DeathType",
    "PlanId",
    "SubscriptionStatus",
    "PaymentStatus",
    "VerificationStatus",
]
