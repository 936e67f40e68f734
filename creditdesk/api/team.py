"""
creditdesk/api/team.py
Team API: roster, ownership and billing admins of the logged-in account's team.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from creditdesk.api.deps import account_payload, get_store, raise_for_failure, require_current_user
from creditdesk.core.errors import NotFoundError
from creditdesk.features.accounts.store import AccountStore
from creditdesk.features.accounts.views import available_seats

router = APIRouter(prefix="/v1/team", tags=["team"])


class MemberRequest(BaseModel):
    email: str
    credit_limit: Optional[int] = None


class EmailRequest(BaseModel):
    email: str


class CreditLimitRequest(BaseModel):
    credit_limit: Optional[int] = None


def _team_response(account) -> dict:
    return {"data": account_payload(account)}


@router.get("")
async def get_team(store: AccountStore = Depends(get_store)):
    account = require_current_user(store)
    if account.teams_plan is None:
        raise NotFoundError("Account has no team")
    team = account.teams_plan
    return {
        "data": team.model_dump(mode="json", by_alias=True),
        "availableSeats": available_seats(team),
    }


@router.post("/members")
async def add_member(body: MemberRequest, store: AccountStore = Depends(get_store)):
    """Invite a member. They stay pending until activated."""
    return _team_response(raise_for_failure(store.add_team_member(body.email, body.credit_limit)))


@router.delete("/members/{email}")
async def remove_member(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.remove_team_member(email)))


@router.post("/members/{email}/activate")
async def activate_member(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.mark_member_as_active(email)))


@router.post("/members/{email}/owner")
async def make_owner(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.make_team_owner(email)))


@router.post("/members/{email}/billing-admin")
async def member_to_billing_admin(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.convert_member_to_billing_admin(email)))


@router.post("/transfer-ownership")
async def transfer_ownership(body: EmailRequest, store: AccountStore = Depends(get_store)):
    """Only the current owner may hand ownership to another member."""
    return _team_response(raise_for_failure(store.transfer_team_ownership(body.email)))


@router.post("/billing-admins")
async def invite_billing_admin(body: EmailRequest, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.invite_billing_admin(body.email)))


@router.delete("/billing-admins/{email}")
async def remove_billing_admin(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.remove_billing_admin(email)))


@router.post("/billing-admins/{email}/accept")
async def accept_billing_admin_invite(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.accept_billing_admin_invite(email)))


@router.post("/billing-admins/{email}/activate")
async def activate_billing_admin(email: str, store: AccountStore = Depends(get_store)):
    return _team_response(raise_for_failure(store.mark_billing_admin_as_active(email)))


@router.post("/billing-admins/{email}/member")
async def billing_admin_to_member(
    email: str, body: CreditLimitRequest, store: AccountStore = Depends(get_store)
):
    return _team_response(raise_for_failure(store.convert_billing_admin_to_member(email, body.credit_limit)))
