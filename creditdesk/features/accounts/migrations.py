"""
creditdesk/features/accounts/migrations.py

Schema upgrades for the persisted state document.

Runs on the raw JSON document before it is validated into AppState, so the
store never sees a legacy-shaped account. Each step is idempotent.

Version history:
- 1: original layout, no "version" key. Accounts may lack creditTransactions,
     teams may lack billingAdmins, members may lack status, Pro plans may lack
     billingInterval, and a downgrade to free could leave the paid plan payload
     in place.
- 2: all of the above present. Plan payloads match the plan and usage never
     exceeds the pool.
"""

import logging
from typing import Any, Callable, Dict

from creditdesk.models.account import STATE_SCHEMA_VERSION

logger = logging.getLogger("creditdesk")

Document = Dict[str, Any]


def _upgrade_account_v1(account: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(account)
    upgraded.setdefault("invoices", [])
    if upgraded.get("creditTransactions") is None:
        upgraded["creditTransactions"] = []
    if upgraded.get("extraCredits") is None:
        upgraded["extraCredits"] = 0

    plan = upgraded.get("plan") or "free"
    # downgrades used to leave the old plan payload behind
    if plan != "pro":
        upgraded.pop("proPlan", None)
    if plan != "teams":
        upgraded.pop("teamsPlan", None)
    credits = upgraded.get("credits") or 0
    if (upgraded.get("creditsUsed") or 0) > credits:
        upgraded["creditsUsed"] = credits

    pro_plan = upgraded.get("proPlan")
    if pro_plan is not None and not pro_plan.get("billingInterval"):
        upgraded["proPlan"] = {**pro_plan, "billingInterval": "monthly"}

    teams_plan = upgraded.get("teamsPlan")
    if teams_plan is not None:
        members = [
            {**m, "status": m.get("status") or "active"}
            for m in teams_plan.get("members") or []
        ]
        upgraded["teamsPlan"] = {
            **teams_plan,
            "members": members,
            "billingAdmins": teams_plan.get("billingAdmins") or [],
            "extraCredits": teams_plan.get("extraCredits") or 0,
            "sharedCreditsUsed": min(
                teams_plan.get("sharedCreditsUsed") or 0, teams_plan.get("sharedCredits") or 0
            ),
        }
    return upgraded


def _upgrade_v1_to_v2(document: Document) -> Document:
    users = document.get("users") or {}
    return {
        **document,
        "users": {email: _upgrade_account_v1(account) for email, account in users.items()},
        "version": 2,
    }


# from-version -> step producing from-version + 1
MIGRATIONS: Dict[int, Callable[[Document], Document]] = {
    1: _upgrade_v1_to_v2,
}


def document_version(document: Document) -> int:
    return int(document.get("version") or 1)


def upgrade_document(document: Document) -> Document:
    """Bring a raw state document up to STATE_SCHEMA_VERSION.

    Raises:
        ValueError: If the document is newer than this code understands.
    """
    version = document_version(document)
    if version > STATE_SCHEMA_VERSION:
        raise ValueError(
            f"State document version {version} is newer than supported version {STATE_SCHEMA_VERSION}"
        )

    while version < STATE_SCHEMA_VERSION:
        step = MIGRATIONS[version]
        document = step(document)
        logger.info("state.migrated", extra={"event_type": f"v{version}->v{version + 1}"})
        version = document_version(document)

    return document
