"""
Request bodies for the HTTP API.

Fields are snake_case in Python and camelCase on the wire. Responses are the
plain dicts returned by the services, which are already camelCase.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from guildwatch.database.models import ConfigurationType, PlanId


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# Auth


class RegisterRequest(CamelModel):
    character_name: str = Field(min_length=1, max_length=30)
    world: str = Field(min_length=1, max_length=30)
    guild_name: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=6, max_length=100)


class LoginRequest(CamelModel):
    character_name: str = Field(min_length=1, max_length=30)
    world: str = Field(min_length=1, max_length=30)
    password: str = Field(min_length=1, max_length=100)


# Guild


class GuildIdRequest(CamelModel):
    guild_id: int = Field(gt=0)


class UpdatePasswordRequest(CamelModel):
    guild_id: int = Field(gt=0)
    password: str = Field(min_length=6, max_length=100)


class WorldSubscriptionCreate(CamelModel):
    world: str = Field(min_length=1, max_length=30)


class ActiveToggle(CamelModel):
    is_active: bool


class GuildConfigurationCreate(CamelModel):
    world_subscription_id: int = Field(gt=0)
    guild_name: str = Field(min_length=1, max_length=50)
    type: ConfigurationType

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# Subscription


class TransferDetailsIn(CamelModel):
    from_character: str = Field(min_length=1, max_length=30)
    to_character: str = Field(min_length=1, max_length=30)
    timestamp: Optional[datetime] = None
    screenshot: Optional[str] = None


class SubmitPaymentRequest(CamelModel):
    plan: PlanId
    amount: int = Field(gt=0)
    additional_worlds: Optional[int] = Field(default=None, ge=1, le=10)
    transfer_details: TransferDetailsIn

    @field_validator("plan", mode="before")
    @classmethod
    def _upper_plan(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# Admin


class ApprovePaymentRequest(CamelModel):
    verification_id: int = Field(gt=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class RejectPaymentRequest(CamelModel):
    verification_id: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=1000)
