"""
/api/admin: payment review and business metrics. SUPER_ADMIN only.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from guildwatch.api.dependencies import get_services, require_super_admin
from guildwatch.api.schemas import ApprovePaymentRequest, RejectPaymentRequest
from guildwatch.api.state import Services
from guildwatch.database.models import User

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/pending-payments")
async def pending_payments(
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.billing.list_pending_verifications()


@router.post("/approve-payment")
async def approve_payment(
    payload: ApprovePaymentRequest,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.billing.approve_payment(
        admin, payload.verification_id, payload.notes
    )


@router.post("/reject-payment")
async def reject_payment(
    payload: RejectPaymentRequest,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.billing.reject_payment(
        admin, payload.verification_id, payload.reason
    )


@router.post("/expire-subscriptions")
async def expire_subscriptions(
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    expired = await services.billing.process_expired_subscriptions()
    return {"success": True, "expired": expired}


@router.get("/business-metrics")
async def business_metrics(
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.metrics.compute()


@router.get("/customers")
async def customers(
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.metrics.list_customers()
