"""Time helpers.

All timestamps in the notification core are naive UTC datetimes so that they
compare cleanly with values read back from any SQL backend.
"""

from datetime import datetime, timedelta

import arrow


def utc_now() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return arrow.utcnow().naive


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return arrow.get(value).to("UTC").naive


def days_ago(days: int, now: datetime | None = None) -> datetime:
    """Return the naive UTC instant ``days`` before ``now``."""
    return (now or utc_now()) - timedelta(days=days)


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the epoch for a naive UTC datetime."""
    return int(arrow.get(value).float_timestamp * 1000)


def iso_utc(value: datetime) -> str:
    """ISO 8601 text for a naive UTC datetime with a ``Z`` suffix, as sent to clients."""
    return arrow.get(value).isoformat().replace("+00:00", "Z")
