"""
creditdesk/features/billing/pricing.py

Static pricing catalogue and the calculators used by the plan pages.

The account store receives a PricingConfig instance; nothing in the state
machine reads these values as module globals.
"""

from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from creditdesk.core.config import Settings
from creditdesk.models.account import BillingInterval, ProPlan


class ProTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    credits: int
    price: int
    annual_price: int
    name: str


class TeamsTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    credits: int
    price: int
    name: str


class CreditBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    credits: int
    price: int


class PricingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    seat_price: int = 10
    pro_tiers: List[ProTier] = Field(default_factory=list)
    teams_tiers: List[TeamsTier] = Field(default_factory=list)
    credit_bundles: List[CreditBundle] = Field(default_factory=list)
    extra_credit_bundles: List[CreditBundle] = Field(default_factory=list)
    min_team_seats: int = 2
    initial_free_credits: int = 150
    min_avg_credits_per_seat: int = 1000
    max_free_credits_on_downgrade: int = 150
    billing_cycle_days: int = 30
    annual_billing_cycle_days: int = 365


# Default catalogue. Annual Pro prices carry a 20% discount.
DEFAULT_PRICING = {
    "pro_tiers": [
        {"credits": 1000, "price": 20, "annual_price": 192, "name": "Pro Starter"},
        {"credits": 2500, "price": 45, "annual_price": 432, "name": "Pro Growth"},
        {"credits": 5000, "price": 80, "annual_price": 768, "name": "Pro Enterprise"},
    ],
    "teams_tiers": [
        {"credits": 5000, "price": 100, "name": "Teams Starter"},
        {"credits": 10000, "price": 180, "name": "Teams Growth"},
        {"credits": 25000, "price": 400, "name": "Teams Enterprise"},
    ],
    "credit_bundles": [
        {"credits": 500, "price": 15},
        {"credits": 1000, "price": 25},
        {"credits": 2500, "price": 55},
    ],
    "extra_credit_bundles": [
        {"credits": 1000, "price": 10},
        {"credits": 5000, "price": 50},
        {"credits": 10000, "price": 100},
    ],
}


def build_pricing(settings_obj: Optional[Settings] = None) -> PricingConfig:
    """Default catalogue with the scalar constants taken from settings."""
    if settings_obj is None:
        return PricingConfig(**DEFAULT_PRICING)
    return PricingConfig(
        **DEFAULT_PRICING,
        seat_price=settings_obj.SEAT_PRICE,
        initial_free_credits=settings_obj.INITIAL_FREE_CREDITS,
        min_avg_credits_per_seat=settings_obj.MIN_AVG_CREDITS_PER_SEAT,
        max_free_credits_on_downgrade=settings_obj.MAX_FREE_CREDITS_ON_DOWNGRADE,
        billing_cycle_days=settings_obj.BILLING_CYCLE_DAYS,
        annual_billing_cycle_days=settings_obj.ANNUAL_BILLING_CYCLE_DAYS,
    )


def find_pro_tier(pricing: PricingConfig, monthly_credits: int) -> Optional[ProTier]:
    return next((t for t in pricing.pro_tiers if t.credits == monthly_credits), None)


def find_teams_tier(pricing: PricingConfig, monthly_credits: int) -> Optional[TeamsTier]:
    return next((t for t in pricing.teams_tiers if t.credits == monthly_credits), None)


def pro_plan_for_tier(tier: ProTier, interval: BillingInterval = BillingInterval.MONTHLY) -> ProPlan:
    price = tier.annual_price if interval == BillingInterval.ANNUAL else tier.price
    return ProPlan(
        monthly_credits=tier.credits,
        price=price,
        name=tier.name,
        billing_interval=interval,
    )


def teams_monthly_cost(pricing: PricingConfig, tier_price: int, seats: int) -> int:
    """Monthly charge for a team: tier price plus every seat."""
    return tier_price + seats * pricing.seat_price


def avg_credits_per_seat(credits: int, seats: int) -> int:
    if seats <= 0:
        return 0
    return credits // seats


def is_below_recommended_credits(pricing: PricingConfig, credits: int, seats: int) -> bool:
    return avg_credits_per_seat(credits, seats) < pricing.min_avg_credits_per_seat


def annual_monthly_equivalent(tier: ProTier) -> int:
    return round(tier.annual_price / 12)


def bundle_total(counts: Mapping[int, int], bundles: List[CreditBundle]) -> Dict[str, int]:
    """Sum credits and price for a basket of bundles keyed by bundle size.

    Unknown bundle sizes and non-positive counts are ignored.
    """
    by_credits = {b.credits: b for b in bundles}
    credits = 0
    price = 0
    for size, count in counts.items():
        bundle = by_credits.get(size)
        if bundle is None or count <= 0:
            continue
        credits += bundle.credits * count
        price += bundle.price * count
    return {"credits": credits, "price": price}
