"""Billing-cycle date helpers."""
from datetime import datetime, timedelta, timezone

from creditdesk.features.billing.dates import (
    calculate_annual_billing_cycle_end,
    calculate_billing_cycle_end,
    calculate_pro_downgrade_credits,
    get_days_until_expiry,
    is_billing_cycle_passed,
)

NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


def test_cycle_end_is_thirty_days_out():
    assert calculate_billing_cycle_end(NOW) == NOW + timedelta(days=30)


def test_annual_cycle_end_is_365_days_out():
    assert calculate_annual_billing_cycle_end(NOW) == NOW + timedelta(days=365)


def test_cycle_length_can_be_overridden():
    assert calculate_billing_cycle_end(NOW, days=7) == NOW + timedelta(days=7)


def test_downgrade_credits_capped_at_150():
    assert calculate_pro_downgrade_credits(800) == 150
    assert calculate_pro_downgrade_credits(150) == 150
    assert calculate_pro_downgrade_credits(40) == 40
    assert calculate_pro_downgrade_credits(0) == 0


def test_downgrade_credits_never_negative():
    assert calculate_pro_downgrade_credits(-25) == 0


def test_cycle_passed_only_after_end():
    end = NOW + timedelta(days=1)
    assert is_billing_cycle_passed(end, now=NOW) is False
    assert is_billing_cycle_passed(end, now=end) is False
    assert is_billing_cycle_passed(end, now=end + timedelta(seconds=1)) is True


def test_cycle_passed_without_end_date():
    assert is_billing_cycle_passed(None, now=NOW) is False


def test_days_until_expiry_rounds_up():
    assert get_days_until_expiry(NOW + timedelta(days=2, hours=1), now=NOW) == 3
    assert get_days_until_expiry(NOW + timedelta(days=2), now=NOW) == 2
    assert get_days_until_expiry(NOW + timedelta(minutes=5), now=NOW) == 1


def test_days_until_expiry_clamped_at_zero():
    assert get_days_until_expiry(NOW - timedelta(days=4), now=NOW) == 0
    assert get_days_until_expiry(None, now=NOW) == 0
