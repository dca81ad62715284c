"""Refresh pipeline configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from motorscope.refresh.schemas import (
    DEFAULT_GRACE_PERIOD_DAYS,
    DEFAULT_INTERVAL_MINUTES,
    HISTORY_SIZE,
    MAX_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
)


class RefreshConfig(BaseSettings):
    """
    Configuration for refresh passes and the refresh schedule.

    All settings can be overridden via environment variables prefixed with REFRESH_.

    Example:
        REFRESH_ITEM_DELAY_SECONDS=5
        REFRESH_RATE_LIMIT_RETRY_MINUTES=5
    """

    model_config = SettingsConfigDict(
        env_prefix="REFRESH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Schedule
    default_interval_minutes: float = Field(default=DEFAULT_INTERVAL_MINUTES, gt=0.0)
    min_interval_minutes: float = Field(default=MIN_INTERVAL_MINUTES, gt=0.0)
    max_interval_minutes: float = Field(default=MAX_INTERVAL_MINUTES, gt=0.0)
    rate_limit_retry_minutes: float | None = Field(
        default=None,
        gt=0.0,
        description="Next run after a rate-limited pass; unset uses the full interval.",
    )

    # Pass behaviour
    item_delay_seconds: float = Field(default=2.0, ge=0.0, le=60.0)
    history_size: int = Field(default=HISTORY_SIZE, ge=1, le=1000)
    ended_grace_period_days: int = Field(default=DEFAULT_GRACE_PERIOD_DAYS, ge=1, le=30)
    run_claim_ttl_seconds: float = Field(
        default=7200.0,
        gt=0.0,
        description="Lifetime of the cross-process run claim; a crashed pass frees it after this.",
    )
