"""Pricing catalogue and the Teams quote calculator."""

from fastapi import APIRouter, Depends, Query

from creditdesk.api.deps import get_store
from creditdesk.core.errors import ValidationError
from creditdesk.features.accounts.store import AccountStore
from creditdesk.features.billing.pricing import (
    annual_monthly_equivalent,
    avg_credits_per_seat,
    find_teams_tier,
    is_below_recommended_credits,
    teams_monthly_cost,
)

router = APIRouter(prefix="/v1/pricing", tags=["pricing"])


@router.get("")
async def get_pricing(store: AccountStore = Depends(get_store)):
    pricing = store.pricing
    data = pricing.model_dump()
    data["pro_tiers"] = [
        {**tier.model_dump(), "annual_monthly_equivalent": annual_monthly_equivalent(tier)}
        for tier in pricing.pro_tiers
    ]
    return {"data": data}


@router.get("/teams-quote")
async def teams_quote(
    credits: int = Query(...),
    seats: int = Query(..., ge=1),
    store: AccountStore = Depends(get_store),
):
    """Monthly cost and per-seat allotment for a prospective team."""
    pricing = store.pricing
    tier = find_teams_tier(pricing, credits)
    if tier is None:
        raise ValidationError(f"No Teams tier with {credits} monthly credits", code="unknown_tier")
    return {
        "data": {
            "tier": tier.model_dump(),
            "seats": seats,
            "monthly_cost": teams_monthly_cost(pricing, tier.price, seats),
            "avg_credits_per_seat": avg_credits_per_seat(tier.credits, seats),
            "below_recommended": is_below_recommended_credits(pricing, tier.credits, seats),
            "min_seats": pricing.min_team_seats,
        }
    }
