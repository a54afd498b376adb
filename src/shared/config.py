"""Application settings.

Values come from ``DINESTREAM_*`` environment variables (or a ``.env``
file). ``APP_ENV`` picks the environment the same way for settings and
logging: ``development``, ``test``, ``staging`` or ``production``.
"""

import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def current_env() -> str:
    return (os.getenv("APP_ENV") or os.getenv("ENVIRONMENT") or "development").lower()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DINESTREAM_", env_file=".env", extra="ignore")

    env: str = Field(default_factory=current_env)

    # Persistence
    database_url: str = "sqlite:///./dinestream.db"
    database_echo: bool = False

    # Live tracking
    redis_url: str | None = None  # None → in-process broker
    tracking_topic: str = "orders"
    stream_keepalive_seconds: float = 30.0
    stream_queue_size: int = Field(default=100, ge=1)

    # Pricing policy
    currency: str = "GBP"
    tax_rate: float = Field(default=0.0, ge=0.0)
    delivery_base_fee: float = Field(default=2.50, ge=0.0)
    free_delivery_threshold: float = Field(default=15.00, ge=0.0)  # 0 disables

    # Orders
    order_number_prefix: str = "ST"

    # Drivers
    active_driver_staleness_minutes: int = Field(default=30, ge=1)
    password_min_length: int = 6
    password_hash_method: str = "scrypt"

    # Payments
    payment_gateway: str = "fake"  # fake | sumup
    sumup_api_key: str = ""
    sumup_merchant_code: str = ""
    sumup_base_url: str = "https://api.sumup.com/v0.1"
    payment_timeout_seconds: float = 15.0

    @property
    def is_production(self) -> bool:
        return self.env == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
