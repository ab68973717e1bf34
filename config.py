import os
from functools import lru_cache
from pathlib import Path


DEFAULT_HORIZON_MONTHS = 24
DEFAULT_OVERRIDE_EPSILON = 0.01


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        horizon_months: int,
        override_epsilon: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.horizon_months = horizon_months
        self.override_epsilon = override_epsilon


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("CASHPLAN_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "cashplan.db"
    database_url = os.getenv("CASHPLAN_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("CASHPLAN_TIMEZONE", "Europe/Paris")
    horizon_months = int(
        os.getenv("CASHPLAN_HORIZON_MONTHS", str(DEFAULT_HORIZON_MONTHS))
    )
    if horizon_months < 1:
        raise ValueError("CASHPLAN_HORIZON_MONTHS must be at least 1")
    override_epsilon = float(
        os.getenv("CASHPLAN_OVERRIDE_EPSILON", str(DEFAULT_OVERRIDE_EPSILON))
    )
    return Settings(
        database_url=database_url,
        timezone=timezone,
        horizon_months=horizon_months,
        override_epsilon=override_epsilon,
    )
