# backend/slotbook/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/slotbook.db"
    redis_url: str | None = None
    log_level: str = "INFO"

    # Scheduling
    slot_step_minutes: int = 30
    cancellation_lead_hours: int = 24
    auto_confirm_bookings: bool = False
    service_lock_timeout_seconds: float = 10.0

    # Subscriptions
    trial_days: int = 14
    subscription_period_months: int = 1
    subscription_amount: float = 99.00
    subscription_currency: str = "SAR"

    # Background maintenance (completion / expiry sweep)
    maintenance_enabled: bool = False
    maintenance_interval_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite path -> absolute, anchored at the repo root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
