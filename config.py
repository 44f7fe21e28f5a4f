import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_secs: int,
        default_window_days: int,
        top_categories: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_secs = session_max_age_secs
        self.default_window_days = default_window_days
        self.top_categories = top_categories


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Berlin")
    session_secret = os.getenv(
        "LEDGER_SESSION_SECRET",
        "4f1c9a7e2b0d8c36e5a1f7b9d2c4e6a8b0c2d4e6f8a1b3c5d7e9f0a2b4c6d8e0",
    )
    session_max_age_secs = int(os.getenv("LEDGER_SESSION_MAX_AGE_SECS", "604800"))
    default_window_days = int(os.getenv("LEDGER_DEFAULT_WINDOW_DAYS", "30"))
    top_categories = int(os.getenv("LEDGER_TOP_CATEGORIES", "3"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_secs=session_max_age_secs,
        default_window_days=default_window_days,
        top_categories=top_categories,
    )
