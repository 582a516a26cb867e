"""Subscription plans, Tibia Coin payment review and business metrics."""

from .metrics import BusinessMetricsService
from .plans import PLAN_DURATION_DAYS, PLANS, Plan, get_plan, list_plans
from .service import BillingService, TransferDetails, payment_external_id

__all__ = [
    "BusinessMetricsService",
    "PLAN_DURATION_DAYS",
    "PLANS",
    "Plan",
    "get_plan",
    "list_plans",
    "BillingService",
    "TransferDetails",
    "payment_external_id",
]
