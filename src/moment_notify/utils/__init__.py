"""Utility functions for the notification core."""

from moment_notify.utils.clock import days_ago, epoch_millis, to_naive_utc, utc_now

__all__ = [
    "days_ago",
    "epoch_millis",
    "to_naive_utc",
    "utc_now",
]
