import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"

    # State persistence
    STORAGE_BACKEND: str = "json"  # memory | json | sql
    STORAGE_PATH: str = "creditdesk-state.json"
    STORAGE_KEY: str = "creditdesk-user-data"
    DATABASE_URL: Optional[str] = None

    # Pricing constants (injected into the account store)
    SEAT_PRICE: int = 10  # $/seat/month
    INITIAL_FREE_CREDITS: int = 150
    MIN_AVG_CREDITS_PER_SEAT: int = 1000
    MAX_FREE_CREDITS_ON_DOWNGRADE: int = 150
    BILLING_CYCLE_DAYS: int = 30
    ANNUAL_BILLING_CYCLE_DAYS: int = 365

    # App URLs
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate storage configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("creditdesk")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    backend = (cfg.STORAGE_BACKEND or "").lower()
    if backend not in {"memory", "json", "sql"}:
        problems.append(f"Unknown STORAGE_BACKEND: {cfg.STORAGE_BACKEND}")
    if backend == "sql" and not cfg.DATABASE_URL:
        problems.append("STORAGE_BACKEND=sql requires DATABASE_URL")
    if backend == "json" and not cfg.STORAGE_PATH:
        problems.append("STORAGE_BACKEND=json requires STORAGE_PATH")

    if problems:
        message = f"Invalid configuration: {'; '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)
        return False

    return True
