"""Login, logout and "viewing as" resolution."""
from creditdesk.features.accounts.results import FailureReason
from creditdesk.models.account import PlanTier, TransactionType


def test_first_login_creates_free_account(store):
    result = store.login("x@y.com")
    assert result.ok
    account = store.get_current_user()
    assert account.email == "x@y.com"
    assert account.plan == PlanTier.FREE
    assert account.credits == 150
    assert [t.type for t in account.credit_transactions] == [TransactionType.SIGNUP]
    assert account.credit_transactions[0].credits == 150


def test_login_is_idempotent(store):
    store.login("x@y.com")
    store.burn_credits(10)
    store.login("x@y.com")
    account = store.get_current_user()
    assert account.credits_used == 10
    assert len(account.credit_transactions) == 1


def test_switching_users_keeps_both_accounts(store):
    store.login("a@example.com")
    store.login("b@example.com")
    assert store.current_user == "b@example.com"
    assert set(store.users) == {"a@example.com", "b@example.com"}


def test_blank_email_rejected(store, storage):
    result = store.login("   ")
    assert not result
    assert result.reason == FailureReason.INVALID_EMAIL
    assert storage.load() is None


def test_logout_keeps_accounts(store):
    store.login("a@example.com")
    store.set_impersonated_user("b@example.com")
    store.logout()
    assert store.get_current_user() is None
    assert store.impersonated_user is None
    assert "a@example.com" in store.users


def test_clear_storage_forgets_everything(store, storage):
    store.login("a@example.com")
    store.clear_storage()
    assert store.users == {}
    assert store.current_user == ""
    assert storage.load() is None


def test_viewing_as_defaults_to_current_user(store):
    store.login("a@example.com")
    assert store.get_viewing_as_user().email == "a@example.com"
    assert store.is_viewing_as_billing_admin() is False


def test_viewing_as_active_billing_admin(store, make_team):
    make_team()
    store.invite_billing_admin("admin@example.com")
    store.set_impersonated_user("admin@example.com")
    assert store.is_viewing_as_billing_admin() is False

    store.accept_billing_admin_invite("admin@example.com")
    assert store.is_viewing_as_billing_admin() is True
    assert store.get_current_user().email == "owner@example.com"


def test_viewing_as_unknown_account(store):
    store.login("a@example.com")
    store.set_impersonated_user("ghost@example.com")
    assert store.get_viewing_as_user() is None
    store.set_impersonated_user(None)
    assert store.get_viewing_as_user().email == "a@example.com"


def test_mutation_without_login(store):
    result = store.burn_credits(5)
    assert result.reason == FailureReason.NO_CURRENT_USER
