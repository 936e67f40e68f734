"""Credit purchases, burning, invoices and the audit log."""
from creditdesk.features.accounts.results import FailureReason
from creditdesk.features.accounts.views import can_burn, credit_summary, plan_expiry, transactions_newest_first
from creditdesk.models.account import InvoiceStatus, ProPlan, TransactionType

STARTER = ProPlan(monthly_credits=1000, price=20, name="Pro Starter")


def test_buy_credits_on_free_plan(store):
    store.login("x@y.com")
    account = store.buy_credits(500, 15).account
    assert account.credits == 650
    assert account.invoices[-1].description == "500 credits purchase"
    assert account.invoices[-1].amount == 15
    assert account.credit_transactions[-1].type == TransactionType.PURCHASED


def test_buy_credits_goes_to_team_pool(store, make_team):
    make_team()
    account = store.buy_credits(1000, 25).account
    assert account.teams_plan.shared_credits == 6000
    assert account.credits == 0


def test_buy_credits_rejects_non_positive(store, storage):
    store.login("x@y.com")
    saved = storage.load()
    assert store.buy_credits(0, 0).reason == FailureReason.INVALID_AMOUNT
    assert store.buy_credits(-5, 10).reason == FailureReason.INVALID_AMOUNT
    assert storage.load() == saved


def test_extra_credits_need_paid_plan(store):
    store.login("x@y.com")
    assert store.buy_extra_credits(1000, 10).reason == FailureReason.WRONG_PLAN


def test_extra_credits_on_pro(store):
    store.login("x@y.com")
    store.upgrade_to_pro_plan(STARTER)
    account = store.buy_extra_credits(1000, 10).account
    assert account.credits == 2000
    assert account.extra_credits == 1000
    assert account.invoices[-1].description == "1000 extra credits purchase"
    assert account.credit_transactions[-1].type == TransactionType.EXTRA_CREDITS


def test_extra_credits_on_team(store, make_team):
    make_team()
    team = store.buy_extra_credits(5000, 50).account.teams_plan
    assert team.shared_credits == 10000
    assert team.extra_credits == 5000


def test_burn_is_clamped(store):
    store.login("x@y.com")
    account = store.burn_credits(10_000).account
    assert account.credits_used == account.credits == 150
    assert not can_burn(account, 1)


def test_team_burn_is_clamped(store, make_team):
    make_team()
    team = store.burn_credits(99_999).account.teams_plan
    assert team.shared_credits_used == team.shared_credits


def test_burn_rejects_non_positive(store):
    store.login("x@y.com")
    assert store.burn_credits(0).reason == FailureReason.INVALID_AMOUNT


def test_credit_summary_pools(store, make_team):
    store.login("solo@example.com")
    store.burn_credits(50)
    solo = credit_summary(store.get_current_user())
    assert (solo.pool, solo.total, solo.used, solo.available) == ("individual", 150, 50, 100)

    make_team()
    store.burn_credits(200)
    team = credit_summary(store.get_current_user())
    assert (team.pool, team.total, team.available) == ("team", 5000, 4800)


def test_add_invoice_defaults(store, clock):
    store.login("x@y.com")
    invoice = store.add_invoice(20, "Pro Starter subscription (monthly)").account.invoices[-1]
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.date == clock()
    assert invoice.id.startswith("INV-")


def test_add_credit_transaction(store):
    store.login("x@y.com")
    account = store.add_credit_transaction(TransactionType.DAILY, 10, "+10 (Daily)").account
    assert account.credit_transactions[-1].description == "+10 (Daily)"


def test_transactions_newest_first(store, clock):
    store.login("x@y.com")
    clock.advance(days=1)
    store.buy_credits(500, 15)
    history = transactions_newest_first(store.get_current_user())
    assert [t.type for t in history] == [TransactionType.PURCHASED, TransactionType.SIGNUP]


def test_plan_expiry_view(store, clock):
    store.login("x@y.com")
    store.upgrade_to_pro_plan(STARTER)
    clock.advance(days=10, hours=12)
    expiry = plan_expiry(store.get_current_user(), now=clock())
    assert expiry.days_remaining == 20
    assert expiry.cycle_passed is False
