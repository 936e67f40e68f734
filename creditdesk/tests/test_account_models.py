"""Account model shape and plan payload exclusivity."""
from datetime import datetime

import pytest
from pydantic import ValidationError

from creditdesk.models.account import (
    Account,
    AppState,
    PlanStatus,
    PlanTier,
    ProPlan,
    TeamsPlan,
    evolve,
    new_invoice_id,
    new_transaction_id,
)

PRO = ProPlan(monthly_credits=1000, price=20, name="Pro Starter")


def test_free_account_defaults():
    account = Account(email="a@example.com", credits=150)
    assert account.plan == PlanTier.FREE
    assert account.credits_used == 0
    assert account.invoices == []
    assert account.effective_status is None


def test_pro_requires_payload():
    with pytest.raises(ValidationError):
        Account(email="a@example.com", plan=PlanTier.PRO)


def test_free_account_cannot_carry_team():
    team = TeamsPlan(team_name="T", seats=2, monthly_credits=5000, shared_credits=5000, plan_name="Teams Starter")
    with pytest.raises(ValidationError):
        Account(email="a@example.com", teams_plan=team)


def test_evolve_revalidates():
    account = Account(email="a@example.com", plan=PlanTier.PRO, pro_plan=PRO, credits=1000)
    with pytest.raises(ValidationError):
        evolve(account, plan=PlanTier.FREE)
    downgraded = evolve(account, plan=PlanTier.FREE, pro_plan=None)
    assert downgraded.plan == PlanTier.FREE
    assert account.plan == PlanTier.PRO


def test_missing_status_on_paid_plan_reads_active():
    account = Account(email="a@example.com", plan=PlanTier.PRO, pro_plan=PRO)
    assert account.effective_status == PlanStatus.ACTIVE


def test_serializes_camel_case():
    account = Account(email="a@example.com", plan=PlanTier.PRO, pro_plan=PRO, credits=1000, credits_used=10)
    dumped = account.model_dump(mode="json", by_alias=True)
    assert dumped["creditsUsed"] == 10
    assert dumped["proPlan"]["monthlyCredits"] == 1000
    assert dumped["proPlan"]["billingInterval"] == "monthly"


def test_naive_datetimes_become_utc():
    account = Account(email="a@example.com", billing_cycle_end=datetime(2025, 1, 1))
    assert account.billing_cycle_end.utcoffset().total_seconds() == 0


def test_app_state_round_trip_by_alias():
    state = AppState(current_user="a@example.com", users={"a@example.com": Account(email="a@example.com")})
    restored = AppState.model_validate(state.model_dump(mode="json", by_alias=True))
    assert restored.current_user == "a@example.com"
    assert restored.version == 2


def test_generated_ids_have_prefixes():
    assert new_invoice_id().startswith("INV-")
    assert new_transaction_id().startswith("TXN-")
    assert new_transaction_id() != new_transaction_id()


def test_usage_cannot_exceed_credits():
    with pytest.raises(ValidationError):
        Account(email="a@example.com", credits=100, credits_used=101)
    with pytest.raises(ValidationError):
        TeamsPlan(
            team_name="T", seats=2, monthly_credits=100, shared_credits=100, shared_credits_used=101, plan_name="T"
        )
