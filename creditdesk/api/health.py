"""
Health endpoint for liveness probes.
"""

import logging

from fastapi import APIRouter, Request

from creditdesk.core.config import settings
from creditdesk.core.logging import get_request_id

logger = logging.getLogger("creditdesk")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz(request: Request):
    """Lightweight liveness check (no storage access)."""
    store = getattr(request.app.state, "store", None)
    logger.debug("health.check", extra={"request_id": get_request_id()})
    return {
        "status": "ok",
        "storage": getattr(request.app.state, "settings", settings).STORAGE_BACKEND,
        "accounts": len(store.users) if store is not None else 0,
    }
