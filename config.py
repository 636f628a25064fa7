import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_ttl_hours: int,
        frontend_origin: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_ttl_hours = token_ttl_hours
        self.frontend_origin = frontend_origin
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("GASTOS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("GASTOS_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "gastos.db"
        database_url = f"sqlite:///{default_db}"
    # Month boundaries for the monthly gate are evaluated in this zone.
    timezone = os.getenv("GASTOS_TIMEZONE", "UTC")
    # Required; main.py refuses to start without it.
    token_secret = os.getenv("GASTOS_TOKEN_SECRET", "")
    token_ttl_hours = int(os.getenv("GASTOS_TOKEN_TTL_HOURS", "168"))
    frontend_origin = os.getenv("GASTOS_FRONTEND_ORIGIN", "*")
    log_level = os.getenv("GASTOS_LOG_LEVEL", "INFO")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_ttl_hours=token_ttl_hours,
        frontend_origin=frontend_origin,
        log_level=log_level,
    )
