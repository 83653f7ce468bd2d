"""Database engine and session handling.

The engine is created lazily from ``MOMENT_NOTIFY_DATABASE_URL`` on the first
session, so importing the package never requires a database. Sessions are
handed out three ways:

- ``get_db_session``: FastAPI dependency for request handlers
- ``borrow_db_session``: context manager for work outside requests
- ``run_in_session``: runs a ``borrow_db_session`` unit of work on a worker
  thread, for event subscribers, the sweeper and the maintenance jobs

Every service that runs outside a request takes a ``SessionFactory`` so that
tests can substitute their own database.
"""

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, TypeVar

from fastapi.concurrency import run_in_threadpool
from loguru import logger
from sqlalchemy import Engine, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, text
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from moment_notify.settings import get_settings

SessionFactory = Callable[[], AbstractContextManager[Session]]

T = TypeVar("T")

_engine: Engine | None = None


def _build_engine() -> Engine:
    """Create an engine from the current settings.

    Raises:
        ValueError: If no database URL is configured
    """
    settings = get_settings()
    url = settings.database_url
    if not url:
        raise ValueError("Database URL missing: provide MOMENT_NOTIFY_DATABASE_URL env or --database-url CLI argument")

    if url.startswith("sqlite"):
        engine = create_engine(url, echo=settings.sql_log, connect_args={"check_same_thread": False})
    else:
        # Subscribers and jobs borrow sessions concurrently with request handlers
        engine = create_engine(
            url,
            echo=settings.sql_log,
            pool_pre_ping=True,
            pool_recycle=1800,
            pool_size=10,
            max_overflow=10,
            pool_timeout=30,
            connect_args={"connect_timeout": 10},
        )
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = _build_engine()
    return _engine


def dispose_db() -> None:
    """Close pooled connections; the next session builds a fresh engine."""
    global _engine
    if _engine is not None:
        logger.info("Closing database connections")
        _engine.dispose()
        _engine = None


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
    retry=retry_if_exception_type(SQLAlchemyError),
    before_sleep=before_sleep_log(logger, "DEBUG"),
)
def _open_session() -> Session:
    """Open a session and check its connection, retrying while the database is unreachable.

    A failed check drops the engine so that the next attempt starts from a new pool.

    Raises:
        SQLAlchemyError: If every attempt failed
    """
    try:
        session = Session(get_engine())
        session.execute(text("SELECT 1"))
        return session
    except SQLAlchemyError as e:
        logger.warning(f"Database connection failed: {e}")
        dispose_db()
        raise


@contextmanager
def borrow_db_session() -> Generator[Session]:
    """Session for work outside request handlers; rolled back on error and always closed.

    Example:
        with borrow_db_session() as session:
            get_notification_service().create_notification(session, user_id, type_, title, body)
    """
    session = _open_session()
    try:
        yield session
    except Exception as e:  # noqa: BLE001
        logger.error(f"Rolling back database session after error: {e!r}")
        session.rollback()
        raise
    finally:
        session.close()


async def run_in_session(work: Callable[[Session], T], session_factory: SessionFactory = borrow_db_session) -> T:
    """Run one unit of work with a borrowed session on a worker thread.

    Async subscribers and jobs use this for every store access so that
    statements and the connection retry backoff only ever block that thread.
    """

    def unit_of_work() -> T:
        with session_factory() as session:
            return work(session)

    return await run_in_threadpool(unit_of_work)


def get_db_session() -> Generator[Session]:
    """FastAPI dependency yielding a database session.

    Usage in route:
        def endpoint(session: Session = Depends(get_db_session)): ...
    """
    with borrow_db_session() as session:
        yield session


def missing_tables(session: Session) -> list[str]:
    """Tables of the notification schema that the database does not have yet."""
    existing = set(inspect(session.get_bind()).get_table_names())
    return sorted(name for name in SQLModel.metadata.tables if name not in existing)


def is_healthy(session: Session) -> dict[str, Any]:
    """Check the connection and report tables still awaiting a migration."""
    try:
        session.exec(text("SELECT 1")).one()
        missing = missing_tables(session)
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e), "connection": "failed"}

    if missing:
        return {"status": "unhealthy", "connection": "active", "missing_tables": missing}
    return {"status": "healthy", "connection": "active"}
