"""
creditdesk/models/account.py

Account models: plans, team roster, invoices and the credit audit log.

All models are frozen. State changes produce new instances via evolve(),
which re-runs validation so plan payload exclusivity always holds.
Serialized names are camelCase to match the persisted state document.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


STATE_SCHEMA_VERSION = 2


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class PlanTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    TEAMS = "teams"


class PlanStatus(str, Enum):
    """Paid plan lifecycle. Pro skips CANCELLATION_PENDING."""

    ACTIVE = "active"
    CANCELLATION_PENDING = "cancellation-pending"
    CANCELLED = "cancelled"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class MemberRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"


class InvoiceStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class TransactionType(str, Enum):
    SIGNUP = "signup"
    DAILY = "daily"
    PURCHASED = "purchased"
    ROLLOVER = "rollover"
    PLAN_CHANGE = "plan_change"
    EXPIRED = "expired"
    TRANSFERRED = "transferred"
    EXTRA_CREDITS = "extra_credits"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ProPlan(CamelModel):
    monthly_credits: int = Field(ge=0)
    price: float = Field(ge=0)
    name: str
    billing_interval: BillingInterval = BillingInterval.MONTHLY


class TeamMember(CamelModel):
    email: str
    credit_limit: Optional[int] = None
    role: MemberRole = MemberRole.MEMBER
    status: MembershipStatus = MembershipStatus.PENDING
    joined_at: UtcDatetime


class BillingAdmin(CamelModel):
    """Team administrator without a seat and without access to team credits."""

    email: str
    status: MembershipStatus = MembershipStatus.PENDING
    invited_at: UtcDatetime
    accepted_at: Optional[UtcDatetime] = None


class TeamsPlan(CamelModel):
    team_name: str
    seats: int = Field(ge=1)
    monthly_credits: int = Field(ge=0)
    shared_credits: int = Field(ge=0)
    shared_credits_used: int = Field(default=0, ge=0)
    plan_name: str
    extra_credits: int = Field(default=0, ge=0)
    members: List[TeamMember] = Field(default_factory=list)
    billing_admins: List[BillingAdmin] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_usage(self) -> "TeamsPlan":
        if self.shared_credits_used > self.shared_credits:
            raise ValueError("sharedCreditsUsed cannot exceed sharedCredits")
        return self

    @property
    def owners(self) -> List[TeamMember]:
        return [m for m in self.members if m.role == MemberRole.OWNER]


class Invoice(CamelModel):
    id: str
    date: UtcDatetime
    amount: float
    description: str
    status: InvoiceStatus = InvoiceStatus.PAID


class CreditTransaction(CamelModel):
    """Audit record of one balance change. Positive credits were added."""

    id: str
    date: UtcDatetime
    credits: int
    type: TransactionType
    description: str


class Account(CamelModel):
    email: str
    plan: PlanTier = PlanTier.FREE
    credits: int = Field(default=0, ge=0)
    credits_used: int = Field(default=0, ge=0)
    extra_credits: int = Field(default=0, ge=0)
    billing_cycle: Optional[UtcDatetime] = None
    billing_cycle_end: Optional[UtcDatetime] = None
    plan_status: Optional[PlanStatus] = None
    cancelled_at: Optional[UtcDatetime] = None
    pro_plan: Optional[ProPlan] = None
    teams_plan: Optional[TeamsPlan] = None
    payment_method: Optional[str] = None
    invoices: List[Invoice] = Field(default_factory=list)
    credit_transactions: List[CreditTransaction] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_plan_payload(self) -> "Account":
        if self.plan == PlanTier.PRO and self.pro_plan is None:
            raise ValueError("pro accounts require a proPlan")
        if self.plan == PlanTier.TEAMS and self.teams_plan is None:
            raise ValueError("teams accounts require a teamsPlan")
        if self.plan != PlanTier.PRO and self.pro_plan is not None:
            raise ValueError(f"{self.plan.value} accounts cannot carry a proPlan")
        if self.plan != PlanTier.TEAMS and self.teams_plan is not None:
            raise ValueError(f"{self.plan.value} accounts cannot carry a teamsPlan")
        if self.credits_used > self.credits:
            raise ValueError("creditsUsed cannot exceed credits")
        # nested instances are not revalidated, so check the pool here too
        team = self.teams_plan
        if team is not None and team.shared_credits_used > team.shared_credits:
            raise ValueError("sharedCreditsUsed cannot exceed sharedCredits")
        return self

    @property
    def effective_status(self) -> Optional[PlanStatus]:
        """Plan status with the "absent means active" rule applied to paid plans."""
        if self.plan == PlanTier.FREE:
            return None
        return self.plan_status or PlanStatus.ACTIVE


class AppState(CamelModel):
    """Persisted document: identity plus every known account."""

    version: int = STATE_SCHEMA_VERSION
    current_user: str = ""
    users: Dict[str, Account] = Field(default_factory=dict)


def evolve(model, **changes):
    """Return a validated copy of a frozen model with fields replaced."""
    data = dict(model)
    data.update(changes)
    return type(model)(**data)


def new_invoice_id() -> str:
    return f"INV-{uuid4().hex[:12].upper()}"


def new_transaction_id() -> str:
    return f"TXN-{uuid4().hex}"
