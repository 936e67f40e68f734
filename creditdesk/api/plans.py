"""
creditdesk/api/plans.py
Plan API: upgrades, team plan/seat edits, cancellation and billing cycles.

Routes resolve tiers from the pricing catalogue and hand the store the plan
change together with its invoice, so both are saved in one write.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from creditdesk.api.deps import account_payload, get_store, raise_for_failure, require_current_user
from creditdesk.core.errors import ConflictError, ValidationError
from creditdesk.features.accounts.store import AccountStore, Charge
from creditdesk.features.accounts.views import plan_expiry
from creditdesk.features.billing.pricing import (
    find_pro_tier,
    find_teams_tier,
    pro_plan_for_tier,
    teams_monthly_cost,
)
from creditdesk.models.account import BillingInterval, PlanTier, TeamsPlan

router = APIRouter(prefix="/v1/plans", tags=["plans"])


class ProPlanRequest(BaseModel):
    credits: int
    billing_interval: BillingInterval = BillingInterval.MONTHLY


class TeamsPlanRequest(BaseModel):
    credits: int
    seats: int = Field(ge=1)
    team_name: str = "My Team"


class TeamsUpdateRequest(BaseModel):
    credits: Optional[int] = None
    seats: Optional[int] = None


def _pro_tier(store: AccountStore, credits: int):
    tier = find_pro_tier(store.pricing, credits)
    if tier is None:
        raise ValidationError(f"No Pro tier with {credits} monthly credits", code="unknown_tier")
    return tier


def _teams_tier(store: AccountStore, credits: int):
    tier = find_teams_tier(store.pricing, credits)
    if tier is None:
        raise ValidationError(f"No Teams tier with {credits} monthly credits", code="unknown_tier")
    return tier


@router.post("/pro")
async def upgrade_to_pro(body: ProPlanRequest, store: AccountStore = Depends(get_store)):
    """Subscribe to Pro from Free (or re-subscribe after a cancellation)."""
    tier = _pro_tier(store, body.credits)
    pro_plan = pro_plan_for_tier(tier, body.billing_interval)
    charge = Charge(pro_plan.price, f"{tier.name} subscription ({body.billing_interval.value})")
    account = raise_for_failure(store.upgrade_to_pro_plan(pro_plan, charge))
    return {"data": account_payload(account)}


@router.post("/pro/change")
async def change_pro_tier(body: ProPlanRequest, store: AccountStore = Depends(get_store)):
    tier = _pro_tier(store, body.credits)
    pro_plan = pro_plan_for_tier(tier, body.billing_interval)
    charge = Charge(pro_plan.price, f"Upgraded to {tier.name} ({body.billing_interval.value})")
    account = raise_for_failure(store.upgrade_pro(pro_plan, charge))
    return {"data": account_payload(account)}


@router.post("/pro/cancel")
async def cancel_pro(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.cancel_pro_plan()))}


@router.post("/pro/reactivate")
async def reactivate_pro(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.reactivate_pro_plan()))}


@router.post("/teams")
async def upgrade_to_teams(body: TeamsPlanRequest, store: AccountStore = Depends(get_store)):
    """Start a team. Unused Pro credits move into the shared pool."""
    tier = _teams_tier(store, body.credits)
    teams_plan = TeamsPlan(
        team_name=body.team_name,
        seats=body.seats,
        monthly_credits=tier.credits,
        shared_credits=tier.credits,
        plan_name=tier.name,
    )
    charge = Charge(teams_monthly_cost(store.pricing, tier.price, body.seats), f"{tier.name} - {body.seats} seats")
    account = raise_for_failure(store.upgrade_to_teams_plan(teams_plan, charge))
    return {"data": account_payload(account)}


@router.patch("/teams")
async def update_teams(body: TeamsUpdateRequest, store: AccountStore = Depends(get_store)):
    """Change tier, seat count or both.

    A tier change restarts the billing cycle and is invoiced at the full
    monthly cost. A seats-only change invoices the added seats.
    """
    current = require_current_user(store)
    if current.plan != PlanTier.TEAMS:
        raise ConflictError(f"Requires a teams plan, account is on {current.plan.value}", code="wrong_plan")
    team = current.teams_plan

    if body.credits is None and body.seats is None:
        raise ValidationError("Nothing to update", code="empty_update")

    if body.credits is None:
        added = body.seats - team.seats
        charge = Charge(added * store.pricing.seat_price, f"{added} additional seats") if added > 0 else None
        account = raise_for_failure(store.update_team_seats_only(body.seats, charge))
        return {"data": account_payload(account)}

    tier = _teams_tier(store, body.credits)
    seats = team.seats if body.seats is None else body.seats
    charge = Charge(teams_monthly_cost(store.pricing, tier.price, seats), f"{tier.name} - {seats} seats")
    if body.seats is None:
        account = raise_for_failure(store.update_team_plan_only(tier.name, tier.credits, tier.price, charge))
    else:
        account = raise_for_failure(
            store.update_team_plan_and_seats(tier.name, tier.credits, tier.price, body.seats, charge)
        )
    return {"data": account_payload(account)}


@router.post("/teams/cancel")
async def cancel_teams(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.cancel_teams_plan()))}


@router.post("/teams/reactivate")
async def reactivate_teams(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.reactivate_teams_plan()))}


@router.post("/teams/process-billing-cycle")
async def process_teams_cycle(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.process_billing_cycle_teams()))}


@router.delete("/teams")
async def delete_team(store: AccountStore = Depends(get_store)):
    return {"data": account_payload(raise_for_failure(store.delete_team()))}


@router.post("/process-billing-cycle")
async def process_cycle(email: Optional[str] = None, store: AccountStore = Depends(get_store)):
    """Finalize a cancelled plan, for the logged-in user or the given email."""
    return {"data": account_payload(raise_for_failure(store.process_billing_cycle(email)))}


@router.get("/expiry")
async def get_expiry(store: AccountStore = Depends(get_store)):
    account = require_current_user(store)
    expiry = plan_expiry(account, store.now())
    return {"data": expiry.model_dump(mode="json")}
