"""Event-driven notification core of the Moment scheduling app."""

from .settings import Settings, get_settings  # noqa: F401

__all__ = ["get_settings", "Settings"]
