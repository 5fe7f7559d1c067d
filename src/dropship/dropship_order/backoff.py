"""Retry delay schedule.

The delay before a retry is ``base * multiplier[retry_count]``, keyed by the
retry count *before* the attempt is counted: 5m, 15m, 1h, 4h, then 8h.
"""

from datetime import UTC, datetime, timedelta

from dropship.settings import DropshipSettings, get_settings


def retry_delay(retry_count: int, settings: DropshipSettings | None = None) -> int:
    """Seconds to wait before retrying an order that has been retried ``retry_count`` times."""
    settings = settings or get_settings()
    multiplier = settings.retry_multipliers.get(retry_count, settings.retry_default_multiplier)
    return settings.retry_base_delay_seconds * multiplier


def next_retry_at(retry_count: int, now: datetime | None = None) -> datetime:
    return (now or datetime.now(UTC)) + timedelta(seconds=retry_delay(retry_count))
