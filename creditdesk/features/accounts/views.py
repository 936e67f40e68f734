"""
Derived read-only views over an Account.

Everything here is computed from the account record on demand; there is no
cache to invalidate.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from creditdesk.features.billing.dates import get_days_until_expiry, is_billing_cycle_passed
from creditdesk.models.account import (
    Account,
    CreditTransaction,
    MemberRole,
    MembershipStatus,
    PlanTier,
    TeamMember,
    TeamsPlan,
)


class CreditSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    pool: str  # "individual" | "team"
    total: int
    used: int
    available: int
    extra: int


class PlanExpiry(BaseModel):
    model_config = ConfigDict(frozen=True)

    cycle_end: Optional[datetime]
    days_remaining: int
    cycle_passed: bool


def credit_summary(account: Account) -> CreditSummary:
    """Balance of the pool the account spends from."""
    if account.plan == PlanTier.TEAMS and account.teams_plan is not None:
        team = account.teams_plan
        return CreditSummary(
            pool="team",
            total=team.shared_credits,
            used=team.shared_credits_used,
            available=max(0, team.shared_credits - team.shared_credits_used),
            extra=team.extra_credits,
        )
    return CreditSummary(
        pool="individual",
        total=account.credits,
        used=account.credits_used,
        available=max(0, account.credits - account.credits_used),
        extra=account.extra_credits,
    )


def available_credits(account: Account) -> int:
    return credit_summary(account).available


def can_burn(account: Account, amount: int) -> bool:
    return amount > 0 and available_credits(account) >= amount


def available_seats(team: TeamsPlan) -> int:
    return max(0, team.seats - len(team.members))


def find_member(team: TeamsPlan, email: str) -> Optional[TeamMember]:
    return next((m for m in team.members if m.email == email), None)


def is_team_owner(account: Account, email: str) -> bool:
    if account.teams_plan is None:
        return False
    member = find_member(account.teams_plan, email)
    return member is not None and member.role == MemberRole.OWNER


def is_billing_admin(account: Account, email: str) -> bool:
    """True only for billing admins who accepted their invite."""
    if account.teams_plan is None:
        return False
    return any(
        a.email == email and a.status == MembershipStatus.ACTIVE
        for a in account.teams_plan.billing_admins
    )


def transactions_newest_first(account: Account) -> List[CreditTransaction]:
    return sorted(account.credit_transactions, key=lambda t: t.date, reverse=True)


def plan_expiry(account: Account, now: Optional[datetime] = None) -> PlanExpiry:
    end = account.billing_cycle_end
    return PlanExpiry(
        cycle_end=end,
        days_remaining=get_days_until_expiry(end, now),
        cycle_passed=is_billing_cycle_passed(end, now),
    )
