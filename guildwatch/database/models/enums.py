"""
Database Model Enums
====================

Enumerations for categorical columns across the GuildWatch schema.

These are declarative schema helpers; the rules that act on them live in
the service layer.
"""

from __future__ import annotations

import enum


class GuildType(str, enum.Enum):
    """
    Relationship of a tracked guild to the account that monitors it.
    """

    MAIN = "MAIN"
    ALLY = "ALLY"
    ENEMY = "ENEMY"
    FRIEND = "FRIEND"


class PlayerType(str, enum.Enum):
    """
    How a tracked character relates to the monitoring guild.

    Assigned by roster reconciliation from the type of the guild being synced.
    """

    GUILD_MEMBER = "GUILD_MEMBER"
    EXTERNAL_ENEMY = "EXTERNAL_ENEMY"
    EXTERNAL_ALLY = "EXTERNAL_ALLY"
    EXTERNAL_FRIEND = "EXTERNAL_FRIEND"


class UserRole(str, enum.Enum):
    """Account roles, checked at the HTTP boundary."""

    SUPER_ADMIN = "SUPER_ADMIN"
    GUILD_ADMIN = "GUILD_ADMIN"
    GUILD_MEMBER = "GUILD_MEMBER"


class ConfigurationType(str, enum.Enum):
    """Role tag on a guild configuration."""

    MAIN = "MAIN"
    ALLY = "ALLY"
    ENEMY = "ENEMY"


class DeathType(str, enum.Enum):
    PVP = "PVP"
    PVE = "PVE"


class PlanId(str, enum.Enum):
    """
    Subscription plans.

    BASIC covers one world; EXTENDED buys additional worlds on top of it.
    """

    BASIC = "BASIC"
    EXTENDED = "EXTENDED"


class SubscriptionStatus(str, enum.Enum):
    """
    Subscription lifecycle.

    PENDING_PAYMENT -> ACTIVE -> (CANCELLED | EXPIRED)
    """

    PENDING_PAYMENT = "PENDING_PAYMENT"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class VerificationStatus(str, enum.Enum):
    """
    Review state of a submitted Tibia Coin transfer.

    PENDING -> (APPROVED | REJECTED); both outcomes are terminal.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
