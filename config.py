import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        access_key: str,
        access_token_max_age_secs: int,
        refresh_token_max_age_secs: int,
        scheduler_enabled: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.access_key = access_key
        self.access_token_max_age_secs = access_token_max_age_secs
        self.refresh_token_max_age_secs = refresh_token_max_age_secs
        self.scheduler_enabled = scheduler_enabled
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Asia/Almaty")
    secret_key = os.getenv(
        "BUDGET_SECRET_KEY",
        "3f1c9a0e5b7d2c48a6e19f0b7c3d5e2a9b8c7d6e5f4a3b2c1d0e9f8a7b6c5d4e",
    )
    access_key = os.getenv("BUDGET_ACCESS_KEY", "change-me")
    access_token_max_age_secs = int(
        os.getenv("BUDGET_ACCESS_TOKEN_MAX_AGE_SECS", "900")
    )
    refresh_token_max_age_secs = int(
        os.getenv("BUDGET_REFRESH_TOKEN_MAX_AGE_SECS", str(30 * 24 * 3600))
    )
    scheduler_enabled = _env_flag("BUDGET_SCHEDULER_ENABLED", "true")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        access_key=access_key,
        access_token_max_age_secs=access_token_max_age_secs,
        refresh_token_max_age_secs=refresh_token_max_age_secs,
        scheduler_enabled=scheduler_enabled,
        log_level=log_level,
    )
