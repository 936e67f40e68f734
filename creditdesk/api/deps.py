"""Shared helpers for the account routers."""

from typing import Any, Dict, Optional

from fastapi import Request

from creditdesk.core.errors import (
    ConflictError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from creditdesk.features.accounts.results import FailureReason, MutationResult
from creditdesk.features.accounts.store import AccountStore
from creditdesk.models.account import Account


def get_store(request: Request) -> AccountStore:
    return request.app.state.store


def raise_for_failure(result: MutationResult) -> Account:
    """Translate a rejected mutation into the matching AppError."""
    if result.ok:
        return result.account

    message = result.message or result.reason.value
    reason = result.reason
    if reason == FailureReason.NO_CURRENT_USER:
        raise UnauthenticatedError(message)
    if reason == FailureReason.NOT_FOUND:
        raise NotFoundError(message)
    if reason in (FailureReason.INVALID_EMAIL, FailureReason.INVALID_AMOUNT):
        raise ValidationError(message, code=reason.value)
    raise ConflictError(message, code=reason.value)


def account_payload(account: Optional[Account]) -> Optional[Dict[str, Any]]:
    if account is None:
        return None
    return account.model_dump(mode="json", by_alias=True)


def require_current_user(store: AccountStore) -> Account:
    account = store.get_current_user()
    if account is None:
        raise UnauthenticatedError("No user is logged in")
    return account
