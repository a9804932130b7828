import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        ledger_max_workers: int,
        ledger_timeout_secs: float,
        tolerance_cents: int,
        history_limit: int,
        default_user_id: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.ledger_max_workers = ledger_max_workers
        self.ledger_timeout_secs = ledger_timeout_secs
        self.tolerance_cents = tolerance_cents
        self.history_limit = history_limit
        self.default_user_id = default_user_id
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BALANCES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "balances.db"
    database_url = os.getenv("BALANCES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BALANCES_TIMEZONE", "Europe/Berlin")
    csrf_secret = os.getenv(
        "BALANCES_CSRF_SECRET",
        "3f9c2d41a8e07b5c6d1e2f30a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5c6d7",
    )
    ledger_max_workers = int(os.getenv("BALANCES_LEDGER_MAX_WORKERS", "4"))
    ledger_timeout_secs = float(os.getenv("BALANCES_LEDGER_TIMEOUT_SECS", "10"))
    tolerance_cents = int(os.getenv("BALANCES_TOLERANCE_CENTS", "1"))
    history_limit = int(os.getenv("BALANCES_HISTORY_LIMIT", "30"))
    default_user_id = int(os.getenv("BALANCES_DEFAULT_USER_ID", "1"))
    log_level = os.getenv("BALANCES_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        ledger_max_workers=max(ledger_max_workers, 1),
        ledger_timeout_secs=ledger_timeout_secs,
        tolerance_cents=max(tolerance_cents, 0),
        history_limit=max(history_limit, 1),
        default_user_id=default_user_id,
        log_level=log_level,
    )
