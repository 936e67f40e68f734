"""
creditdesk/api/credits.py
Credits API: bundle purchases, burning and balance views.
"""

from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from creditdesk.api.deps import account_payload, get_store, raise_for_failure, require_current_user
from creditdesk.features.accounts.store import AccountStore
from creditdesk.features.accounts.views import can_burn, credit_summary, transactions_newest_first
from creditdesk.features.billing.pricing import bundle_total

router = APIRouter(prefix="/v1/credits", tags=["credits"])


class BundlePurchaseRequest(BaseModel):
    """Bundle size (credits) mapped to how many of that bundle to buy."""
    bundles: Dict[int, int] = Field(default_factory=dict)


class BurnRequest(BaseModel):
    amount: int


@router.post("/buy")
async def buy_credits(body: BundlePurchaseRequest, store: AccountStore = Depends(get_store)):
    total = bundle_total(body.bundles, store.pricing.credit_bundles)
    account = raise_for_failure(store.buy_credits(total["credits"], total["price"]))
    return {"data": account_payload(account)}


@router.post("/extra")
async def buy_extra_credits(body: BundlePurchaseRequest, store: AccountStore = Depends(get_store)):
    """Extra credits are for Pro and Teams only."""
    total = bundle_total(body.bundles, store.pricing.extra_credit_bundles)
    account = raise_for_failure(store.buy_extra_credits(total["credits"], total["price"]))
    return {"data": account_payload(account)}


@router.post("/burn")
async def burn_credits(body: BurnRequest, store: AccountStore = Depends(get_store)):
    """Usage stops at the pool total; "clamped" reports a burn that hit it."""
    before = require_current_user(store)
    clamped = not can_burn(before, body.amount)
    account = raise_for_failure(store.burn_credits(body.amount))
    return {"data": credit_summary(account).model_dump(), "clamped": clamped}


@router.get("/summary")
async def get_summary(store: AccountStore = Depends(get_store)):
    account = require_current_user(store)
    return {"data": credit_summary(account).model_dump()}


@router.get("/transactions")
async def list_transactions(store: AccountStore = Depends(get_store)):
    account = require_current_user(store)
    transactions = transactions_newest_first(account)
    return {
        "data": [t.model_dump(mode="json", by_alias=True) for t in transactions],
        "count": len(transactions),
    }
