"""Database package for the notification core.

Connection utilities are re-exported from ``connection.py``.
"""

from .connection import (
    SessionFactory,
    borrow_db_session,
    dispose_db,
    get_db_session,
    get_engine,
    is_healthy,
    missing_tables,
    run_in_session,
)

__all__ = [
    "SessionFactory",
    "borrow_db_session",
    "dispose_db",
    "get_db_session",
    "get_engine",
    "is_healthy",
    "missing_tables",
    "run_in_session",
]
