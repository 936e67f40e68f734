"""
Billing-cycle date math.

Pure helpers shared by the account store and the HTTP layer. Every function
that depends on the current time accepts an optional `now` for deterministic
tests.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

BILLING_CYCLE_DAYS = 30
ANNUAL_BILLING_CYCLE_DAYS = 365
MAX_FREE_CREDITS_ON_DOWNGRADE = 150

_SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calculate_billing_cycle_end(start: datetime, days: int = BILLING_CYCLE_DAYS) -> datetime:
    return start + timedelta(days=days)


def calculate_annual_billing_cycle_end(start: datetime, days: int = ANNUAL_BILLING_CYCLE_DAYS) -> datetime:
    return start + timedelta(days=days)


def calculate_pro_downgrade_credits(remaining_credits: int, cap: int = MAX_FREE_CREDITS_ON_DOWNGRADE) -> int:
    """Credits a cancelled Pro account keeps when it drops to Free."""
    return max(0, min(remaining_credits, cap))


def is_billing_cycle_passed(cycle_end: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if cycle_end is None:
        return False
    return (now or utc_now()) > cycle_end


def get_days_until_expiry(cycle_end: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days left in the cycle, rounded up and never negative."""
    if cycle_end is None:
        return 0
    remaining = (cycle_end - (now or utc_now())).total_seconds()
    return max(0, math.ceil(remaining / _SECONDS_PER_DAY))
