import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_hours: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINTRACK_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "fintrack.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINTRACK_TIMEZONE", "UTC")
    token_secret = os.getenv(
        "FINTRACK_TOKEN_SECRET",
        "3f9c1d7be2a84c55a0d6e1f4b7c2a9e86d5b0f13c4e7a2d9b8f6c1e0a3d5b7f2",
    )
    token_max_age_hours = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_HOURS", "720"))
    log_level = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        log_level=log_level,
    )
