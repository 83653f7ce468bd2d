"""Shared fixtures: a per-test SQLite store and event builders.

The store is a WAL-mode file so that sessions borrowed on worker threads get
their own connections, as they do against Postgres.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import pytest
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from moment_notify.events.types import AggregateType, Event, EventMetadata, EventPriority, EventType
from moment_notify.models import db_model  # noqa: F401


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}", connect_args={"check_same_thread": False, "timeout": 30})

    @sa_event.listens_for(engine, "connect")
    def use_wal(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Drop-in replacement for ``borrow_db_session`` bound to the test engine."""

    @contextmanager
    def borrow() -> Generator[Session]:
        session = Session(engine)
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return borrow


@pytest.fixture
def session(session_factory) -> Generator[Session]:
    with session_factory() as session:
        yield session


def make_event(
    type_: EventType = EventType.MOMENT_REQUEST_CREATED,
    payload: dict[str, Any] | None = None,
    user_id: str | None = "u2",
    aggregate_type: AggregateType = AggregateType.MOMENT_REQUEST,
    aggregate_id: str = "r1",
    priority: EventPriority = EventPriority.NORMAL,
) -> Event:
    return Event(
        type=type_,
        aggregate_id=aggregate_id,
        aggregate_type=aggregate_type,
        payload=payload or {},
        metadata=EventMetadata(source="test", user_id=user_id, priority=priority),
    )


@pytest.fixture
def event_factory():
    return make_event
