"""Library configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    supabase_url: str
    supabase_key: str
    revenuecat_api_key: str | None = None
    revenuecat_base_url: str = "https://api.revenuecat.com/v1"
    revenuecat_platform: str = "ios"
    timezone: str | None = None
    storage_path: Path = Path(".nutrition_sync/storage.json")
    freshness_window_seconds: int = 300
    rollover_check_seconds: float = 30.0
    subscription_poll_seconds: float = 30.0
    history_batch_size: int = 5
    history_batch_delay_seconds: float = 0.1
    history_recent_days: int = 7
    cache_retention_days: int = 30
    cache_cleanup_interval_seconds: int = 86400
    allow_first_purchase_bootstrap: bool = True
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
