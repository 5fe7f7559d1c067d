"""Engine policy settings loaded from the environment.

Infrastructure (databases, brokers, event processing mode) is configured in
domain.toml. The knobs below are business policy: retry cutoff and backoff
table, price-swing thresholds, transport timeouts and reporting thresholds.
Every value can be overridden with a ``DROPSHIP_`` prefixed environment
variable, e.g. ``DROPSHIP_RETRY_BASE_DELAY_SECONDS=60``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DropshipSettings(BaseSettings):
    """Policy configuration for the dropship engine."""

    model_config = SettingsConfigDict(
        env_prefix="DROPSHIP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Retry & recovery
    retry_base_delay_seconds: int = 300
    retry_max_attempts: int = 3
    retry_multipliers: dict[int, int] = Field(default_factory=lambda: {0: 1, 1: 3, 2: 12, 3: 48})
    retry_default_multiplier: int = 96
    retry_follow_up_seconds: int = 7200

    # Price-change propagation
    significant_price_change_pct: float = 10.0
    extreme_price_change_pct: float = 25.0

    # Transports
    api_timeout_seconds: float = 30.0
    sync_timeout_seconds: float = 60.0
    sync_page_size: int = 50
    sync_max_pages: int = 100
    transport_max_attempts: int = 3
    transport_backoff_initial_seconds: float = 1.0
    transport_backoff_max_seconds: float = 60.0

    # Integration health
    integration_failure_threshold: int = 5
    integration_unhealthy_threshold: int = 3

    # Orders & alerts
    currency: str = "GBP"
    admin_emails: list[str] = Field(default_factory=list)

    # Reporting
    overdue_days: int = 7
    slow_fulfillment_hours: float = 120.0
    failure_rate_issue_pct: float = 10.0
    failure_rate_high_pct: float = 25.0


@lru_cache
def get_settings() -> DropshipSettings:
    """Return the process-wide settings instance."""
    return DropshipSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
