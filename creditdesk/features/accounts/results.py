"""Outcome of an account-store mutation."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from creditdesk.models.account import Account


class FailureReason(str, Enum):
    WRONG_PLAN = "wrong_plan"
    WRONG_STATUS = "wrong_status"
    NO_CURRENT_USER = "no_current_user"
    NOT_FOUND = "not_found"
    INVALID_EMAIL = "invalid_email"
    SEAT_LIMIT = "seat_limit"
    ALREADY_EXISTS = "already_exists"
    INVALID_AMOUNT = "invalid_amount"


class MutationResult(BaseModel):
    """Either the account written by the mutation or the reason nothing changed."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    account: Optional[Account] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, account: Account) -> "MutationResult":
        return cls(ok=True, account=account)

    @classmethod
    def failure(cls, reason: FailureReason, message: str) -> "MutationResult":
        return cls(ok=False, reason=reason, message=message)

    def __bool__(self) -> bool:
        return self.ok
