"""
Runtime configuration for mealcart.

Values load from environment variables prefixed with ``MEALCART_`` or from a
``.env`` file in the working directory.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MealCartSettings(BaseSettings):
    """Settings with validation."""

    # Local durable store
    db_dir: str = Field(default="data", description="Directory holding mealcart.db")
    storage_quota_bytes: int = Field(
        default=50 * 1024 * 1024, gt=0, description="Quota reported by get_storage_usage"
    )
    storage_high_water_percent: float = Field(default=80.0, gt=0, le=100)
    max_stored_lists: int = Field(default=20, ge=1)

    # Remote API
    api_base_url: str = Field(default="http://localhost:3001")
    read_timeout: float = Field(default=10.0, gt=0, description="GET timeout (seconds)")
    write_timeout: float = Field(default=15.0, gt=0, description="POST/PUT/DELETE timeout (seconds)")

    # Sync queue retry policy
    sync_max_retries: int = Field(default=3, ge=1)
    sync_base_retry_delay: float = Field(default=1.0, ge=0)
    sync_max_retry_delay: float = Field(default=30.0, ge=0)
    sync_backoff_factor: float = Field(default=2.0, ge=1)
    sync_batch_size: int = Field(default=10, ge=1)
    sync_auto_retry: bool = Field(default=True, description="Schedule backoff retries in the background")

    # Meal-plan API retry policy
    meal_plan_max_retries: int = Field(default=3, ge=0)
    meal_plan_base_delay: float = Field(default=1.0, ge=0)
    meal_plan_max_delay: float = Field(default=5.0, ge=0)
    meal_plan_backoff_factor: float = Field(default=2.0, ge=1)

    # Planning
    default_household_size: int = Field(default=2, ge=1, le=20)
    history_max_size: int = Field(default=50, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s %(name)s: %(message)s")

    model_config = SettingsConfigDict(
        env_prefix="MEALCART_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> MealCartSettings:
    """Return the process-wide settings (cached)."""
    return MealCartSettings()


def configure_logging(settings: MealCartSettings = None) -> None:
    """Basic logging setup for applications embedding mealcart."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
