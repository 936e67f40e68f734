"""
creditdesk/api/session.py
Session API: login, logout, "viewing as" and the current account.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from creditdesk.api.deps import account_payload, get_store, raise_for_failure
from creditdesk.features.accounts.store import AccountStore

router = APIRouter(prefix="/v1/session", tags=["session"])


class LoginRequest(BaseModel):
    email: str


class ImpersonateRequest(BaseModel):
    email: Optional[str] = None


def _session_payload(store: AccountStore) -> dict:
    return {
        "currentUser": store.current_user or None,
        "impersonatedUser": store.impersonated_user,
        "account": account_payload(store.get_current_user()),
        "viewingAs": account_payload(store.get_viewing_as_user()),
        "isViewingAsBillingAdmin": store.is_viewing_as_billing_admin(),
    }


@router.get("")
async def get_session(store: AccountStore = Depends(get_store)):
    return {"data": _session_payload(store)}


@router.post("/login")
async def login(body: LoginRequest, store: AccountStore = Depends(get_store)):
    """Log in (or switch) to an email, creating a free account on first use."""
    raise_for_failure(store.login(body.email))
    return {"data": _session_payload(store)}


@router.post("/logout")
async def logout(store: AccountStore = Depends(get_store)):
    store.logout()
    return {"data": _session_payload(store)}


@router.post("/impersonate")
async def impersonate(body: ImpersonateRequest, store: AccountStore = Depends(get_store)):
    """Set or clear the "viewing as" email. Pass null to view as yourself."""
    store.set_impersonated_user(body.email)
    return {"data": _session_payload(store)}


@router.post("/reset")
async def reset(store: AccountStore = Depends(get_store)):
    """Forget every account and delete the persisted document."""
    store.clear_storage()
    return {"data": _session_payload(store)}
