"""
Subscription plan catalogue.

Prices are fixed: 750 Tibia Coins (20 USD) per 30-day period. BASIC covers
one world; each EXTENDED purchase adds worlds at the same unit price.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from guildwatch.database.models import PlanId

PLAN_DURATION_DAYS = 30


@dataclass(frozen=True)
class Plan:
    plan_id: PlanId
    name: str
    tibia_coins_price: int
    usd_price: float
    world_limit: int
    duration_days: int = PLAN_DURATION_DAYS
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def slug(self) -> str:
        return self.plan_id.value.lower()

    def units(self, additional_worlds: Optional[int]) -> int:
        """Billable units: 1 for BASIC, the number of added worlds for EXTENDED."""
        if self.plan_id == PlanId.EXTENDED:
            return max(int(additional_worlds or 1), 1)
        return 1

    def expected_tibia_coins(self, additional_worlds: Optional[int]) -> int:
        return self.tibia_coins_price * self.units(additional_worlds)

    def usd_total(self, additional_worlds: Optional[int]) -> float:
        return self.usd_price * self.units(additional_worlds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.slug,
            "name": self.name,
            "tibiaCoinsPrice": self.tibia_coins_price,
            "usdPrice": self.usd_price,
            "worldLimit": self.world_limit,
            "duration": self.duration_days,
            "features": list(self.features),
        }


PLANS: Dict[PlanId, Plan] = {
    PlanId.BASIC: Plan(
        plan_id=PlanId.BASIC,
        name="Basic Plan",
        tibia_coins_price=750,
        usd_price=20.0,
        world_limit=1,
        features=(
            "Monitor 1 world",
            "Unlimited guild members",
            "Death tracking (PvP/PvE)",
            "Enemy guild monitoring",
        ),
    ),
    PlanId.EXTENDED: Plan(
        plan_id=PlanId.EXTENDED,
        name="Extended World",
        tibia_coins_price=750,
        usd_price=20.0,
        world_limit=1,
        features=(
            "+1 Additional world",
            "All Basic features",
        ),
    ),
}


def get_plan(plan_id: PlanId) -> Plan:
    return PLANS[plan_id]


def list_plans() -> List[Dict[str, Any]]:
    return [plan.to_dict() for plan in PLANS.values()]
