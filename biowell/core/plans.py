from enum import Enum
from typing import Any, Optional

ANNUAL_DISCOUNT = 0.15


class PlanTier(str, Enum):
    free = "free"
    essential = "essential"
    premium = "premium"
    enterprise = "enterprise"


class BillingCycle(str, Enum):
    monthly = "monthly"
    annual = "annual"


PLANS: dict[PlanTier, dict[str, Any]] = {
    PlanTier.free: {
        "name": "Free",
        "price_aed": 0,
        "features": [
            "Connect smart scale and wearables",
            "Browse supplement marketplace (no discounts)",
            "General wellness tips from Smart Coach",
            "No CGM integration",
        ],
        "cgm_access": False,
        "personalized_advice": False,
        "discount_eligible": False,
        "max_discount": None,
        "team_sharing": None,
        "is_enterprise": False,
    },
    PlanTier.essential: {
        "name": "Essential",
        "price_aed": 199,
        "features": [
            "All Free features",
            "Personalized Smart Coach advice",
            "Supplement recommendations",
            "Smart scale, wearables, and CGM integration",
            "Supplement discounts up to 10–15%",
        ],
        "cgm_access": True,
        "personalized_advice": True,
        "discount_eligible": True,
        "max_discount": 0.15,
        "team_sharing": None,
        "is_enterprise": False,
    },
    PlanTier.premium: {
        "name": "Premium",
        "price_aed": 299,
        "features": [
            "All Essential features",
            "Advanced biomarkers & recovery insights",
            "Habit Engine & goal-based stack optimization",
            "Supplement discounts up to 15–20%",
            "Partner Access: Add 1 partner for fertility or goal sync",
        ],
        "cgm_access": True,
        "personalized_advice": True,
        "discount_eligible": True,
        "max_discount": 0.20,
        "team_sharing": {
            "enabled": True,
            "members": "2",
            "partner_sync": True,
            "use_case": "Couples syncing fertility, recovery, or shared goals",
        },
        "is_enterprise": False,
    },
    PlanTier.enterprise: {
        "name": "Enterprise",
        "price_aed": None,
        "features": [
            "Custom packages for 3+ users or B2B partners",
            "Team dashboard & shared insights",
            "Corporate wellness reporting",
            "Dedicated account manager",
            "Volume-based supplement pricing",
        ],
        "cgm_access": True,
        "personalized_advice": True,
        "discount_eligible": True,
        "max_discount": None,
        "team_sharing": {
            "enabled": True,
            "members": "3+",
            "partner_sync": True,
            "use_case": "Teams, families, clinics, wellness providers",
        },
        "is_enterprise": True,
        "contact_cta": "Speak to our Team",
    },
}


def cycle_price(tier: PlanTier, cycle: BillingCycle) -> Optional[float]:
    monthly = PLANS[tier]["price_aed"]
    if monthly is None:
        return None
    if cycle == BillingCycle.annual:
        return round(monthly * 12 * (1 - ANNUAL_DISCOUNT), 2)
    return float(monthly)


def price_id(tier: PlanTier, cycle: BillingCycle) -> Optional[str]:
    if tier not in {PlanTier.essential, PlanTier.premium}:
        return None
    return f"price_{tier.value}_{cycle.value}_aed"


def member_discount(tier: str) -> Optional[float]:
    """Ceiling on the member discount for one-off purchases: 0 when the tier earns none, None when uncapped."""
    try:
        plan = PLANS[PlanTier(tier)]
    except ValueError:
        return 0.0
    if not plan["discount_eligible"]:
        return 0.0
    return plan["max_discount"]


def plan_catalog() -> list[dict[str, Any]]:
    rows = []
    for tier, plan in PLANS.items():
        rows.append(
            {
                "tier": tier.value,
                **plan,
                "monthly_price_aed": cycle_price(tier, BillingCycle.monthly),
                "annual_price_aed": cycle_price(tier, BillingCycle.annual),
                "price_ids": {
                    cycle.value: price_id(tier, cycle) for cycle in BillingCycle if price_id(tier, cycle)
                },
            }
        )
    return rows
