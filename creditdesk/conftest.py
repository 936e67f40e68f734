# creditdesk/conftest.py
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root (parent of the creditdesk package) to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from creditdesk.features.accounts.storage import MemoryStateStorage  # noqa: E402
from creditdesk.features.accounts.store import AccountStore  # noqa: E402
from creditdesk.features.billing.pricing import build_pricing  # noqa: E402
from creditdesk.models.account import TeamsPlan  # noqa: E402

START = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock; advance it explicitly to simulate time passing."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def pricing():
    return build_pricing()


@pytest.fixture
def storage():
    return MemoryStateStorage()


@pytest.fixture
def store(storage, pricing, clock):
    return AccountStore(storage, pricing=pricing, clock=clock)


def teams_plan(seats: int = 5, credits: int = 5000, name: str = "Teams Starter") -> TeamsPlan:
    return TeamsPlan(
        team_name="My Team",
        seats=seats,
        monthly_credits=credits,
        shared_credits=credits,
        plan_name=name,
    )


@pytest.fixture
def make_team(store, clock):
    """Log in as owner, start a team and add members (one minute apart)."""

    def _make(owner: str = "owner@example.com", members=(), seats: int = 5, credits: int = 5000, active: bool = True):
        assert store.login(owner).ok
        result = store.upgrade_to_teams_plan(teams_plan(seats=seats, credits=credits))
        assert result.ok, result.message
        for email in members:
            clock.advance(minutes=1)
            assert store.add_team_member(email).ok
            if active:
                assert store.mark_member_as_active(email).ok
        return store.get_current_user()

    return _make


@pytest.fixture
def api_client(store):
    from fastapi.testclient import TestClient

    from creditdesk.main import create_app

    app = create_app(store=store, pricing_config=store.pricing)
    with TestClient(app) as client:
        yield client
