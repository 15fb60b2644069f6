from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite:///./boxoffice.db"
    use_database_clock: bool = True
    log_level: str = "INFO"

    default_ttl_minutes: int = 10
    max_ttl_minutes: int = 30
    max_extension_minutes: int = 15
    max_total_hold_minutes: int = 45
    max_reservation_quantity: int = 10
    max_bulk_items: int = 5

    order_expiry_hours: int = 24
    sweep_interval_minutes: int = 5
    sweep_batch_size: int = 100
    scheduler_enabled: bool = True

    cron_secret: str = ""
    admin_token: str = ""

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "usd"

    frontend_url: str = "http://localhost:8000"
    allowed_hosts: list[str] = ["*"]
    rate_limit_enabled: bool = True
    reservation_rate_limit: str = "30/minute"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
