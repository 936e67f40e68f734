"""
creditdesk/features/accounts/store.py

Account store: the plan / credit / billing state machine.

Owns every known Account, the logged-in email and an optional "viewing as"
email. Each mutation:
- validates its preconditions and returns MutationResult.failure(...) without
  touching state when they do not hold
- builds new immutable Account records
- saves the full state document, then swaps the new account map in

A failed save raises StorageError and leaves the in-memory state unchanged.
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

from creditdesk.core.logging import log_event
from creditdesk.features.accounts.migrations import document_version, upgrade_document
from creditdesk.features.accounts.results import FailureReason, MutationResult
from creditdesk.features.accounts.storage import StateStorage
from creditdesk.features.accounts.views import available_seats, find_member
from creditdesk.features.billing.dates import (
    calculate_annual_billing_cycle_end,
    calculate_billing_cycle_end,
    calculate_pro_downgrade_credits,
    utc_now,
)
from creditdesk.features.billing.pricing import PricingConfig, build_pricing, find_teams_tier
from creditdesk.models.account import (
    Account,
    AppState,
    BillingAdmin,
    BillingInterval,
    CreditTransaction,
    Invoice,
    InvoiceStatus,
    MemberRole,
    MembershipStatus,
    PlanStatus,
    PlanTier,
    ProPlan,
    TeamMember,
    TeamsPlan,
    TransactionType,
    evolve,
    new_invoice_id,
    new_transaction_id,
)

logger = logging.getLogger("creditdesk")

Guarded = Tuple[Optional[Account], Optional[MutationResult]]


class Charge(NamedTuple):
    """Invoice recorded in the same save as the plan change it pays for."""

    amount: float
    description: str


# Fields reset whenever an account drops back to the free plan
_FREE_PLAN_RESET = {
    "plan": PlanTier.FREE,
    "credits_used": 0,
    "pro_plan": None,
    "teams_plan": None,
    "plan_status": None,
    "cancelled_at": None,
    "billing_cycle": None,
    "billing_cycle_end": None,
    "extra_credits": 0,
}


class AccountStore:
    def __init__(
        self,
        storage: StateStorage,
        pricing: Optional[PricingConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.pricing = pricing or build_pricing()
        self._clock = clock
        self._users: Dict[str, Account] = {}
        self.current_user: str = ""
        self.impersonated_user: Optional[str] = None

    @classmethod
    def load(
        cls,
        storage: StateStorage,
        pricing: Optional[PricingConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AccountStore":
        """Build a store from the persisted document, upgrading legacy shapes first."""
        store = cls(storage, pricing=pricing, clock=clock)
        raw = storage.load()
        if raw is None:
            return store

        upgraded = upgrade_document(raw)
        state = AppState.model_validate(upgraded)
        store._users = dict(state.users)
        store.current_user = state.current_user
        if document_version(raw) != document_version(upgraded):
            store._persist(store._users, store.current_user)

        logger.info(
            "state.loaded",
            extra={"event_type": "state.loaded", "email": store.current_user or None},
        )
        return store

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def users(self) -> Mapping[str, Account]:
        return MappingProxyType(self._users)

    def get_account(self, email: str) -> Optional[Account]:
        return self._users.get(email)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Identity & view resolution
    # ------------------------------------------------------------------

    def set_current_user(self, email: str) -> MutationResult:
        """Log in as email, creating a free account on first sight."""
        action = "set_current_user"
        email = (email or "").strip()
        if not email:
            return self._reject(action, FailureReason.INVALID_EMAIL, "An email address is required")

        existing = self._users.get(email)
        if existing is not None:
            return self._commit(action, email, {}, current_user=email)

        grant = self.pricing.initial_free_credits
        account = Account(email=email, credits=grant)
        account = self._with_transaction(account, TransactionType.SIGNUP, grant, f"+{grant} (Signup)")
        return self._commit(action, email, {email: account}, current_user=email)

    def login(self, email: str) -> MutationResult:
        return self.set_current_user(email)

    def logout(self) -> None:
        self._persist(self._users, "")
        self.current_user = ""
        self.impersonated_user = None
        logger.info("session.logout", extra={"action": "logout"})

    def clear_storage(self) -> None:
        self.storage.clear()
        self._users = {}
        self.current_user = ""
        self.impersonated_user = None
        logger.info("state.cleared", extra={"action": "clear_storage"})

    def get_current_user(self) -> Optional[Account]:
        if not self.current_user:
            return None
        return self._users.get(self.current_user)

    def set_impersonated_user(self, email: Optional[str]) -> None:
        """Switch the "viewing as" pointer; the logged-in identity is unchanged."""
        self.impersonated_user = email or None

    def get_viewing_as_user(self) -> Optional[Account]:
        viewing = self.impersonated_user or self.current_user
        if not viewing:
            return None
        return self._users.get(viewing)

    def is_viewing_as_billing_admin(self) -> bool:
        if not self.impersonated_user or not self.current_user:
            return False
        account = self._users.get(self.current_user)
        if account is None or account.plan != PlanTier.TEAMS or account.teams_plan is None:
            return False
        return any(
            admin.email == self.impersonated_user and admin.status == MembershipStatus.ACTIVE
            for admin in account.teams_plan.billing_admins
        )

    # ------------------------------------------------------------------
    # Plan transitions
    # ------------------------------------------------------------------

    def upgrade_to_pro_plan(self, pro_plan: ProPlan, charge: Optional[Charge] = None) -> MutationResult:
        action = "upgrade_to_pro_plan"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        if account.plan == PlanTier.TEAMS:
            return self._reject(action, FailureReason.WRONG_PLAN, "Teams accounts cannot switch to Pro")

        updated = evolve(account, plan=PlanTier.PRO, **self._pro_cycle_fields(pro_plan))
        credits = pro_plan.monthly_credits
        updated = self._with_transaction(updated, TransactionType.PLAN_CHANGE, credits, f"+{credits} (Purchased)")
        updated = self._with_charge(updated, charge)
        return self._commit(action, account.email, {account.email: updated})

    def upgrade_pro(self, pro_plan: ProPlan, charge: Optional[Charge] = None) -> MutationResult:
        """Change Pro tier or interval, invoicing charge when given."""
        action = "upgrade_pro"
        account, rejected = self._current_account(action, PlanTier.PRO)
        if rejected:
            return rejected

        updated = evolve(account, **self._pro_cycle_fields(pro_plan))
        updated = self._with_charge(updated, charge)
        return self._commit(action, account.email, {account.email: updated})

    def upgrade_to_teams_plan(self, teams_plan: TeamsPlan, charge: Optional[Charge] = None) -> MutationResult:
        action = "upgrade_to_teams_plan"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        if account.plan == PlanTier.TEAMS:
            return self._reject(action, FailureReason.WRONG_PLAN, "Account already has a Teams plan")
        if teams_plan.seats < self.pricing.min_team_seats:
            return self._reject(
                action, FailureReason.SEAT_LIMIT, f"Teams plans need at least {self.pricing.min_team_seats} seats"
            )

        # Credits of a cancelled Pro plan are already forfeit
        carry_over = 0
        carry_extra = 0
        if account.plan == PlanTier.PRO and account.plan_status != PlanStatus.CANCELLED:
            carry_over = max(0, account.credits - account.credits_used)
            carry_extra = account.extra_credits

        now = self.now()
        owner = TeamMember(
            email=account.email,
            role=MemberRole.OWNER,
            status=MembershipStatus.ACTIVE,
            joined_at=now,
        )
        team = evolve(
            teams_plan,
            shared_credits=teams_plan.shared_credits + carry_over + carry_extra,
            members=[owner],
            billing_admins=[a for a in teams_plan.billing_admins if a.email != account.email],
            extra_credits=carry_extra,
        )
        updated = evolve(
            account,
            plan=PlanTier.TEAMS,
            teams_plan=team,
            credits=0,
            credits_used=0,
            pro_plan=None,
            billing_cycle=now,
            billing_cycle_end=calculate_billing_cycle_end(now, self.pricing.billing_cycle_days),
            plan_status=PlanStatus.ACTIVE,
            cancelled_at=None,
            extra_credits=0,
        )

        granted = teams_plan.shared_credits
        updated = self._with_transaction(updated, TransactionType.PLAN_CHANGE, granted, f"+{granted} (Purchased)")
        transferred = carry_over + carry_extra
        if transferred > 0:
            updated = self._with_transaction(
                updated, TransactionType.TRANSFERRED, transferred, f"+{transferred} (Transferred)"
            )
        updated = self._with_charge(updated, charge)
        return self._commit(action, account.email, {account.email: updated})

    def update_team_plan_and_seats(
        self, plan_name: str, monthly_credits: int, price: float, new_seats: int, charge: Optional[Charge] = None
    ) -> MutationResult:
        return self._change_team_plan("update_team_plan_and_seats", plan_name, monthly_credits, new_seats, charge)

    def update_team_plan_only(
        self, plan_name: str, monthly_credits: int, price: float, charge: Optional[Charge] = None
    ) -> MutationResult:
        return self._change_team_plan("update_team_plan_only", plan_name, monthly_credits, None, charge)

    def update_team_seats_only(self, new_seats: int, charge: Optional[Charge] = None) -> MutationResult:
        """Resize the team. A pending cancellation is withdrawn by the change."""
        action = "update_team_seats_only"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        seat_error = self._check_seats(action, account.teams_plan, new_seats)
        if seat_error:
            return seat_error

        changes = {"teams_plan": evolve(account.teams_plan, seats=new_seats)}
        if account.plan_status == PlanStatus.CANCELLATION_PENDING:
            changes.update(plan_status=PlanStatus.ACTIVE, cancelled_at=None)
        updated = evolve(account, **changes)
        updated = self._with_charge(updated, charge)
        return self._commit(action, account.email, {account.email: updated})

    def update_team_seats(self, new_seats: int) -> MutationResult:
        action = "update_team_seats"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        seat_error = self._check_seats(action, account.teams_plan, new_seats)
        if seat_error:
            return seat_error

        updated = evolve(account, teams_plan=evolve(account.teams_plan, seats=new_seats))
        return self._commit(action, account.email, {account.email: updated})

    def update_team_plan(self, new_plan: TeamsPlan) -> MutationResult:
        """Replace the team record wholesale after checking roster invariants."""
        action = "update_team_plan"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        if new_plan.shared_credits_used > new_plan.shared_credits:
            return self._reject(
                action, FailureReason.INVALID_AMOUNT, "Shared credits used cannot exceed shared credits"
            )
        seat_error = self._check_seats(action, new_plan, new_plan.seats)
        if seat_error:
            return seat_error
        member_emails = {m.email for m in new_plan.members}
        if any(a.email in member_emails for a in new_plan.billing_admins):
            return self._reject(
                action, FailureReason.ALREADY_EXISTS, "An email cannot be both a member and a billing admin"
            )
        if new_plan.members and len(new_plan.owners) != 1:
            return self._reject(action, FailureReason.WRONG_STATUS, "A team needs exactly one owner")

        updated = evolve(account, teams_plan=new_plan)
        return self._commit(action, account.email, {account.email: updated})

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def buy_credits(self, credits: int, price: float) -> MutationResult:
        action = "buy_credits"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        if credits <= 0 or price < 0:
            return self._reject(action, FailureReason.INVALID_AMOUNT, "Credits must be positive and price non-negative")

        if account.plan == PlanTier.TEAMS:
            team = account.teams_plan
            updated = evolve(account, teams_plan=evolve(team, shared_credits=team.shared_credits + credits))
        else:
            updated = evolve(account, credits=account.credits + credits)

        updated = self._with_invoice(updated, price, f"{credits} credits purchase")
        updated = self._with_transaction(updated, TransactionType.PURCHASED, credits, f"+{credits} (Purchased)")
        return self._commit(action, account.email, {account.email: updated})

    def buy_extra_credits(self, credits: int, price: float) -> MutationResult:
        action = "buy_extra_credits"
        account, rejected = self._current_account(action, PlanTier.PRO, PlanTier.TEAMS)
        if rejected:
            return rejected
        if credits <= 0 or price < 0:
            return self._reject(action, FailureReason.INVALID_AMOUNT, "Credits must be positive and price non-negative")

        if account.plan == PlanTier.TEAMS:
            team = account.teams_plan
            updated = evolve(
                account,
                teams_plan=evolve(
                    team,
                    shared_credits=team.shared_credits + credits,
                    extra_credits=team.extra_credits + credits,
                ),
            )
        else:
            updated = evolve(
                account,
                credits=account.credits + credits,
                extra_credits=account.extra_credits + credits,
            )

        updated = self._with_invoice(updated, price, f"{credits} extra credits purchase")
        updated = self._with_transaction(updated, TransactionType.EXTRA_CREDITS, credits, f"+{credits} (Extra)")
        return self._commit(action, account.email, {account.email: updated})

    def burn_credits(self, amount: int) -> MutationResult:
        """Consume credits from the active pool; usage is capped at the pool total."""
        action = "burn_credits"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        if amount <= 0:
            return self._reject(action, FailureReason.INVALID_AMOUNT, "Burn amount must be positive")

        if account.plan == PlanTier.TEAMS:
            team = account.teams_plan
            used = min(team.shared_credits_used + amount, team.shared_credits)
            updated = evolve(account, teams_plan=evolve(team, shared_credits_used=used))
        else:
            updated = evolve(account, credits_used=min(account.credits_used + amount, account.credits))
        return self._commit(action, account.email, {account.email: updated})

    def add_invoice(
        self,
        amount: float,
        description: str,
        status: InvoiceStatus = InvoiceStatus.PAID,
        date: Optional[datetime] = None,
    ) -> MutationResult:
        action = "add_invoice"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        updated = self._with_invoice(account, amount, description, status=status, date=date)
        return self._commit(action, account.email, {account.email: updated})

    def add_credit_transaction(self, type: TransactionType, credits: int, description: str) -> MutationResult:
        action = "add_credit_transaction"
        account, rejected = self._current_account(action)
        if rejected:
            return rejected
        updated = self._with_transaction(account, type, credits, description)
        return self._commit(action, account.email, {account.email: updated})

    # ------------------------------------------------------------------
    # Billing lifecycle
    # ------------------------------------------------------------------

    def cancel_pro_plan(self) -> MutationResult:
        """Pro goes straight to cancelled; credits stay spendable until the cycle is processed."""
        action = "cancel_pro_plan"
        account, rejected = self._current_account(action, PlanTier.PRO)
        if rejected:
            return rejected
        if account.effective_status != PlanStatus.ACTIVE:
            return self._reject(action, FailureReason.WRONG_STATUS, "Pro plan is already cancelled")

        updated = evolve(account, plan_status=PlanStatus.CANCELLED, cancelled_at=self.now())
        return self._commit(action, account.email, {account.email: updated})

    def cancel_teams_plan(self) -> MutationResult:
        action = "cancel_teams_plan"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        if account.effective_status != PlanStatus.ACTIVE:
            return self._reject(action, FailureReason.WRONG_STATUS, "Teams plan is not active")

        updated = evolve(account, plan_status=PlanStatus.CANCELLATION_PENDING, cancelled_at=self.now())
        return self._commit(action, account.email, {account.email: updated})

    def reactivate_pro_plan(self) -> MutationResult:
        """Undo a Pro cancellation. No payment and the cycle end date is kept."""
        action = "reactivate_pro_plan"
        account, rejected = self._current_account(action, PlanTier.PRO)
        if rejected:
            return rejected
        if account.plan_status != PlanStatus.CANCELLED:
            return self._reject(action, FailureReason.WRONG_STATUS, "Pro plan is not cancelled")

        updated = evolve(account, plan_status=PlanStatus.ACTIVE, cancelled_at=None)
        return self._commit(action, account.email, {account.email: updated})

    def reactivate_teams_plan(self) -> MutationResult:
        """Withdraw a pending cancellation, or buy a fresh cycle for a cancelled team.

        A fresh cycle resets the pool to the monthly allotment; extra credits
        are not restored. It is invoiced at tier price plus seats.
        """
        action = "reactivate_teams_plan"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected

        if account.plan_status == PlanStatus.CANCELLATION_PENDING:
            updated = evolve(account, plan_status=PlanStatus.ACTIVE, cancelled_at=None)
            return self._commit(action, account.email, {account.email: updated})

        if account.plan_status != PlanStatus.CANCELLED:
            return self._reject(action, FailureReason.WRONG_STATUS, "Teams plan is not cancelled")

        team = account.teams_plan
        now = self.now()
        updated = evolve(
            account,
            plan_status=PlanStatus.ACTIVE,
            cancelled_at=None,
            billing_cycle=now,
            billing_cycle_end=calculate_billing_cycle_end(now, self.pricing.billing_cycle_days),
            teams_plan=evolve(
                team,
                shared_credits=team.monthly_credits,
                shared_credits_used=0,
                extra_credits=0,
            ),
        )
        tier = find_teams_tier(self.pricing, team.monthly_credits)
        total = (tier.price if tier else 0) + team.seats * self.pricing.seat_price
        updated = self._with_invoice(
            updated, total, f"{team.plan_name} with {team.seats} seats - New billing cycle"
        )
        return self._commit(action, account.email, {account.email: updated})

    def process_billing_cycle(self, email: Optional[str] = None) -> MutationResult:
        """Finalize a cancelled plan at the end of its cycle.

        Pro drops to Free keeping at most MAX_FREE_CREDITS_ON_DOWNGRADE credits.
        Teams keeps its plan but forfeits the whole pool.
        """
        action = "process_billing_cycle"
        target = email or self.current_user
        if not target:
            return self._reject(action, FailureReason.NO_CURRENT_USER, "No user is logged in")
        account = self._users.get(target)
        if account is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"Unknown account {target}")
        if account.plan == PlanTier.FREE:
            return self._reject(action, FailureReason.WRONG_PLAN, "Free accounts have no billing cycle")
        if account.plan_status != PlanStatus.CANCELLED:
            return self._reject(action, FailureReason.WRONG_STATUS, "Plan is not cancelled")

        if account.plan == PlanTier.PRO:
            available = max(0, account.credits - account.credits_used)
            kept = calculate_pro_downgrade_credits(available, self.pricing.max_free_credits_on_downgrade)
            expired = available - kept
            updated = evolve(account, **{**_FREE_PLAN_RESET, "credits": kept})
            if kept > 0:
                updated = self._with_transaction(updated, TransactionType.ROLLOVER, kept, f"+{kept} (Rollover)")
            if expired > 0:
                updated = self._with_transaction(updated, TransactionType.EXPIRED, -expired, f"-{expired} (Expired)")
            return self._commit(action, target, {target: updated})

        team = account.teams_plan
        expired = max(0, team.shared_credits - team.shared_credits_used)
        updated = evolve(
            account,
            teams_plan=evolve(team, shared_credits=0, shared_credits_used=0, extra_credits=0),
            plan_status=None,
            cancelled_at=None,
        )
        if expired > 0:
            updated = self._with_transaction(updated, TransactionType.EXPIRED, -expired, f"-{expired} (Expired)")
        return self._commit(action, target, {target: updated})

    def process_billing_cycle_teams(self) -> MutationResult:
        """End the notice period of a pending Teams cancellation: pool exhausted, status cancelled."""
        action = "process_billing_cycle_teams"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        if account.plan_status != PlanStatus.CANCELLATION_PENDING:
            return self._reject(action, FailureReason.WRONG_STATUS, "Teams plan is not pending cancellation")

        team = account.teams_plan
        updated = evolve(
            account,
            plan_status=PlanStatus.CANCELLED,
            teams_plan=evolve(
                team,
                shared_credits=team.monthly_credits,
                shared_credits_used=team.monthly_credits,
                extra_credits=0,
            ),
        )
        return self._commit(action, account.email, {account.email: updated})

    def delete_team(self) -> MutationResult:
        """Dissolve the team: every member account drops to Free with no credits.

        Members receive a copy of the team's invoice history.
        """
        action = "delete_team"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected

        team_invoices = list(account.invoices)
        updates: Dict[str, Account] = {
            account.email: evolve(account, **{**_FREE_PLAN_RESET, "credits": 0}),
        }
        for member in account.teams_plan.members:
            member_account = self._users.get(member.email)
            if member_account is None or member.email == account.email:
                continue
            updates[member.email] = evolve(
                member_account,
                **{**_FREE_PLAN_RESET, "credits": 0},
                invoices=[*member_account.invoices, *team_invoices],
            )
        return self._commit(action, account.email, updates)

    # ------------------------------------------------------------------
    # Roster & roles
    # ------------------------------------------------------------------

    def add_team_member(self, email: str, credit_limit: Optional[int] = None) -> MutationResult:
        action = "add_team_member"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        conflict = self._check_new_email(action, team, email)
        if conflict:
            return conflict
        if available_seats(team) <= 0:
            return self._reject(action, FailureReason.SEAT_LIMIT, "No seats available")

        member = TeamMember(
            email=email,
            credit_limit=credit_limit,
            role=MemberRole.MEMBER,
            status=MembershipStatus.PENDING,
            joined_at=self.now(),
        )
        updated = evolve(account, teams_plan=evolve(team, members=[*team.members, member]))
        return self._commit(action, account.email, {account.email: updated})

    def remove_team_member(self, email: str) -> MutationResult:
        """Remove a member; a removed owner is replaced by the longest-standing member.

        The removed person's own account (if any) is reset to a fresh free plan.
        """
        action = "remove_team_member"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        removed = find_member(team, email)
        if removed is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a team member")

        remaining = [m for m in team.members if m.email != email]
        if remaining and not any(m.role == MemberRole.OWNER for m in remaining):
            successor = min(remaining, key=lambda m: m.joined_at)
            remaining = [
                evolve(m, role=MemberRole.OWNER) if m is successor else m
                for m in remaining
            ]

        updates = {account.email: evolve(account, teams_plan=evolve(team, members=remaining))}
        # The account holding the team record keeps it
        removed_account = self._users.get(email)
        if removed_account is not None and email != account.email:
            updates[email] = evolve(
                removed_account,
                **{**_FREE_PLAN_RESET, "credits": self.pricing.initial_free_credits},
            )
        return self._commit(action, account.email, updates)

    def make_team_owner(self, email: str) -> MutationResult:
        """Promote a member to owner; any other owner becomes a member."""
        action = "make_team_owner"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        if find_member(account.teams_plan, email) is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a team member")
        return self._assign_owner(action, account, email)

    def transfer_team_ownership(self, new_owner_email: str) -> MutationResult:
        """Hand ownership from the logged-in owner to another member."""
        action = "transfer_team_ownership"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if find_member(team, new_owner_email) is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"{new_owner_email} is not a team member")
        caller = find_member(team, self.current_user)
        if caller is None or caller.role != MemberRole.OWNER:
            return self._reject(action, FailureReason.WRONG_STATUS, "Only the current owner can transfer ownership")
        return self._assign_owner(action, account, new_owner_email)

    def mark_member_as_active(self, email: str) -> MutationResult:
        action = "mark_member_as_active"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if find_member(team, email) is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a team member")

        members = [
            evolve(m, status=MembershipStatus.ACTIVE) if m.email == email else m
            for m in team.members
        ]
        updated = evolve(account, teams_plan=evolve(team, members=members))
        return self._commit(action, account.email, {account.email: updated})

    def convert_member_to_billing_admin(self, email: str) -> MutationResult:
        """Move a member to billing admins, freeing their seat."""
        action = "convert_member_to_billing_admin"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        member = find_member(team, email)
        if member is None:
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a team member")
        if member.role == MemberRole.OWNER:
            return self._reject(action, FailureReason.WRONG_STATUS, "Transfer ownership before converting the owner")

        admin = BillingAdmin(email=email, status=MembershipStatus.ACTIVE, invited_at=self.now())
        updated = evolve(
            account,
            teams_plan=evolve(
                team,
                members=[m for m in team.members if m.email != email],
                billing_admins=[*team.billing_admins, admin],
            ),
        )
        return self._commit(action, account.email, {account.email: updated})

    def convert_billing_admin_to_member(self, email: str, credit_limit: Optional[int] = None) -> MutationResult:
        """Move a billing admin onto the roster as an active member; needs a free seat."""
        action = "convert_billing_admin_to_member"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if not any(a.email == email for a in team.billing_admins):
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a billing admin")
        if available_seats(team) <= 0:
            return self._reject(action, FailureReason.SEAT_LIMIT, "No seats available")

        member = TeamMember(
            email=email,
            credit_limit=credit_limit,
            role=MemberRole.MEMBER,
            status=MembershipStatus.ACTIVE,
            joined_at=self.now(),
        )
        updated = evolve(
            account,
            teams_plan=evolve(
                team,
                billing_admins=[a for a in team.billing_admins if a.email != email],
                members=[*team.members, member],
            ),
        )
        return self._commit(action, account.email, {account.email: updated})

    def invite_billing_admin(self, email: str) -> MutationResult:
        action = "invite_billing_admin"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        conflict = self._check_new_email(action, team, email)
        if conflict:
            return conflict

        admin = BillingAdmin(email=email, status=MembershipStatus.PENDING, invited_at=self.now())
        updated = evolve(account, teams_plan=evolve(team, billing_admins=[*team.billing_admins, admin]))
        return self._commit(action, account.email, {account.email: updated})

    def remove_billing_admin(self, email: str) -> MutationResult:
        action = "remove_billing_admin"
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if not any(a.email == email for a in team.billing_admins):
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a billing admin")

        admins = [a for a in team.billing_admins if a.email != email]
        updated = evolve(account, teams_plan=evolve(team, billing_admins=admins))
        return self._commit(action, account.email, {account.email: updated})

    def accept_billing_admin_invite(self, email: str) -> MutationResult:
        return self._activate_billing_admin("accept_billing_admin_invite", email, stamp_accepted=True)

    def mark_billing_admin_as_active(self, email: str) -> MutationResult:
        return self._activate_billing_admin("mark_billing_admin_as_active", email, stamp_accepted=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _current_account(self, action: str, *plans: PlanTier) -> Guarded:
        """Resolve the logged-in account, optionally requiring one of plans."""
        if not self.current_user:
            return None, self._reject(action, FailureReason.NO_CURRENT_USER, "No user is logged in")
        account = self._users.get(self.current_user)
        if account is None:
            return None, self._reject(action, FailureReason.NOT_FOUND, f"Unknown account {self.current_user}")
        if plans and account.plan not in plans:
            allowed = "/".join(p.value for p in plans)
            return None, self._reject(
                action, FailureReason.WRONG_PLAN, f"Requires a {allowed} plan, account is on {account.plan.value}"
            )
        return account, None

    def _current_team_account(self, action: str) -> Guarded:
        return self._current_account(action, PlanTier.TEAMS)

    def _pro_cycle_fields(self, pro_plan: ProPlan) -> dict:
        now = self.now()
        if pro_plan.billing_interval == BillingInterval.ANNUAL:
            cycle_end = calculate_annual_billing_cycle_end(now, self.pricing.annual_billing_cycle_days)
        else:
            cycle_end = calculate_billing_cycle_end(now, self.pricing.billing_cycle_days)
        return {
            "pro_plan": pro_plan,
            "credits": pro_plan.monthly_credits,
            "credits_used": 0,
            "billing_cycle": now,
            "billing_cycle_end": cycle_end,
            "plan_status": PlanStatus.ACTIVE,
            "cancelled_at": None,
            "extra_credits": 0,
        }

    def _change_team_plan(
        self,
        action: str,
        plan_name: str,
        monthly_credits: int,
        new_seats: Optional[int],
        charge: Optional[Charge] = None,
    ) -> MutationResult:
        """Switch tier keeping unused credits, restart the cycle and reactivate."""
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if monthly_credits < 0:
            return self._reject(action, FailureReason.INVALID_AMOUNT, "Monthly credits cannot be negative")
        if new_seats is not None:
            seat_error = self._check_seats(action, team, new_seats)
            if seat_error:
                return seat_error

        remaining = max(0, team.shared_credits - team.shared_credits_used)
        team_changes = {
            "plan_name": plan_name,
            "monthly_credits": monthly_credits,
            "shared_credits": monthly_credits + remaining,
            "shared_credits_used": 0,
        }
        if new_seats is not None:
            team_changes["seats"] = new_seats

        now = self.now()
        updated = evolve(
            account,
            teams_plan=evolve(team, **team_changes),
            billing_cycle=now,
            billing_cycle_end=calculate_billing_cycle_end(now, self.pricing.billing_cycle_days),
            plan_status=PlanStatus.ACTIVE,
            cancelled_at=None,
        )
        updated = self._with_charge(updated, charge)
        return self._commit(action, account.email, {account.email: updated})

    def _check_seats(self, action: str, team: TeamsPlan, new_seats: int) -> Optional[MutationResult]:
        if new_seats < self.pricing.min_team_seats:
            return self._reject(
                action, FailureReason.SEAT_LIMIT, f"Teams plans need at least {self.pricing.min_team_seats} seats"
            )
        if new_seats < len(team.members):
            return self._reject(
                action, FailureReason.SEAT_LIMIT, f"Team has {len(team.members)} members, cannot drop to {new_seats} seats"
            )
        return None

    def _check_new_email(self, action: str, team: TeamsPlan, email: str) -> Optional[MutationResult]:
        if not (email or "").strip():
            return self._reject(action, FailureReason.INVALID_EMAIL, "An email address is required")
        if find_member(team, email) is not None:
            return self._reject(action, FailureReason.ALREADY_EXISTS, f"{email} is already a team member")
        if any(a.email == email for a in team.billing_admins):
            return self._reject(action, FailureReason.ALREADY_EXISTS, f"{email} is already a billing admin")
        return None

    def _assign_owner(self, action: str, account: Account, email: str) -> MutationResult:
        team = account.teams_plan
        members: List[TeamMember] = []
        for m in team.members:
            if m.email == email:
                members.append(evolve(m, role=MemberRole.OWNER))
            elif m.role == MemberRole.OWNER:
                members.append(evolve(m, role=MemberRole.MEMBER))
            else:
                members.append(m)
        updated = evolve(account, teams_plan=evolve(team, members=members))
        return self._commit(action, account.email, {account.email: updated})

    def _activate_billing_admin(self, action: str, email: str, stamp_accepted: bool) -> MutationResult:
        account, rejected = self._current_team_account(action)
        if rejected:
            return rejected
        team = account.teams_plan
        if not any(a.email == email for a in team.billing_admins):
            return self._reject(action, FailureReason.NOT_FOUND, f"{email} is not a billing admin")

        now = self.now()
        admins = []
        for admin in team.billing_admins:
            if admin.email != email:
                admins.append(admin)
                continue
            changes = {"status": MembershipStatus.ACTIVE}
            if stamp_accepted and admin.accepted_at is None:
                changes["accepted_at"] = now
            admins.append(evolve(admin, **changes))
        updated = evolve(account, teams_plan=evolve(team, billing_admins=admins))
        return self._commit(action, account.email, {account.email: updated})

    def _with_transaction(
        self, account: Account, type: TransactionType, credits: int, description: str
    ) -> Account:
        transaction = CreditTransaction(
            id=new_transaction_id(),
            date=self.now(),
            credits=credits,
            type=type,
            description=description,
        )
        return evolve(account, credit_transactions=[*account.credit_transactions, transaction])

    def _with_invoice(
        self,
        account: Account,
        amount: float,
        description: str,
        status: InvoiceStatus = InvoiceStatus.PAID,
        date: Optional[datetime] = None,
    ) -> Account:
        invoice = Invoice(
            id=new_invoice_id(),
            date=date or self.now(),
            amount=amount,
            description=description,
            status=status,
        )
        return evolve(account, invoices=[*account.invoices, invoice])

    def _with_charge(self, account: Account, charge: Optional[Charge]) -> Account:
        if charge is None:
            return account
        return self._with_invoice(account, charge.amount, charge.description)

    def _persist(
self, users: Dict[str, Account], current_user: str) -> None:
        state = AppState(current_user=current_user, users=users)
        self.storage.save(state.model_dump(mode="json", by_alias=True))

    def _commit(
        self,
        action: str,
        email: str,
        updates: Dict[str, Account],
        current_user: Optional[str] = None,
    ) -> MutationResult:
        """Save the new state, then swap it in. Nothing changes if the save fails."""
        users = {**self._users, **updates}
        identity = self.current_user if current_user is None else current_user
        self._persist(users, identity)
        self._users = users
        self.current_user = identity

        log_event("info", "account.mutation", email=email, action=action, event_type="account.mutation")
        return MutationResult.success(users[email])

    def _reject(self, action: str, reason: FailureReason, message: str) -> MutationResult:
        logger.debug(
            "account.mutation_rejected",
            extra={"action": action, "reason": reason.value, "email": self.current_user or None},
        )
        return MutationResult.failure(reason, message)
