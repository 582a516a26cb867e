from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from guildwatch.api.dependencies import get_current_user, get_services
from guildwatch.api.schemas import SubmitPaymentRequest
from guildwatch.api.state import Services
from guildwatch.database.models import User
from guildwatch.modules.billing import TransferDetails, list_plans

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/plans")
async def plans() -> List[Dict[str, Any]]:
    return list_plans()


@router.get("")
async def current_subscription(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.billing.get_subscription(user)


@router.post("/submit-payment")
async def submit_payment(
    payload: SubmitPaymentRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    transfer = payload.transfer_details
    return await services.billing.submit_payment(
        user,
        payload.plan,
        payload.amount,
        payload.additional_worlds,
        TransferDetails(
            from_character=transfer.from_character,
            to_character=transfer.to_character,
            timestamp=transfer.timestamp,
            screenshot=transfer.screenshot,
        ),
    )
