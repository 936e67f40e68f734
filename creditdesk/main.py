import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

# Load env from creditdesk/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from creditdesk.api import credits, health, plans, pricing, session, team  # noqa: E402
from creditdesk.core.config import Settings, settings, validate_config  # noqa: E402
from creditdesk.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from creditdesk.core.logging import configure_logging  # noqa: E402
from creditdesk.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from creditdesk.features.accounts.storage import StateStorage, get_storage  # noqa: E402
from creditdesk.features.accounts.store import AccountStore  # noqa: E402
from creditdesk.features.billing.dates import utc_now  # noqa: E402
from creditdesk.features.billing.pricing import PricingConfig, build_pricing  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("creditdesk")
    logger.info("Starting CreditDesk...")
    if getattr(app.state, "store", None) is None:
        cfg = app.state.settings
        app.state.store = AccountStore.load(
            app.state.storage or get_storage(cfg),
            pricing=app.state.pricing,
            clock=app.state.clock,
        )
    try:
        yield
    finally:
        logger.info("Stopping CreditDesk...")


def create_app(
    settings_obj: Optional[Settings] = None,
    storage: Optional[StateStorage] = None,
    store: Optional[AccountStore] = None,
    pricing_config: Optional[PricingConfig] = None,
    clock: Callable = utc_now,
) -> FastAPI:
    """Build the API. Pass store (or storage) to bypass the configured backend."""
    cfg = settings_obj or settings
    configure_logging(cfg.ENV, cfg.LOG_LEVEL)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    app = FastAPI(title="CreditDesk", lifespan=lifespan)
    app.state.settings = cfg
    app.state.storage = storage
    app.state.store = store
    app.state.pricing = pricing_config or build_pricing(cfg)
    app.state.clock = clock

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cfg.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(session.router)
    app.include_router(plans.router)
    app.include_router(credits.router)
    app.include_router(team.router)
    app.include_router(pricing.router)
    return app


app = create_app()
