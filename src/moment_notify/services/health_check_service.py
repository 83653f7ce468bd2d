"""Health check service module."""

from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import Any

import arrow
from loguru import logger
from pydantic import BaseModel, Field
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from moment_notify.database import SessionFactory, borrow_db_session, is_healthy
from moment_notify.events.system import EventSystem
from moment_notify.utils.version import get_version


class CheckResult(BaseModel):
    """Outcome of a single health check."""

    check: str
    success: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    executed_at: str = Field(default_factory=lambda: arrow.utcnow().isoformat())
    execution_time_ms: float = 0.0


class HealthCheckResult(BaseModel):
    """Pydantic model representing the full health check response."""

    status: str
    version_info: dict[str, Any] = Field(default_factory=dict)
    checks: list[CheckResult] = Field(default_factory=list)


def _timed(check: Callable[[], CheckResult]) -> CheckResult:
    start_time = arrow.utcnow().float_timestamp
    result = check()
    result.execution_time_ms = (arrow.utcnow().float_timestamp - start_time) * 1000
    return result


async def _timed_async(check: Callable[..., Awaitable[CheckResult]], *args: Any) -> CheckResult:
    start_time = arrow.utcnow().float_timestamp
    result = await check(*args)
    result.execution_time_ms = (arrow.utcnow().float_timestamp - start_time) * 1000
    return result


class HealthCheckService:
    """Service for checking the database, the event bus and the socket layer."""

    def __init__(self, session_factory: SessionFactory = borrow_db_session):
        self._session_factory = session_factory

    def check_database(self) -> CheckResult:
        try:
            with self._session_factory() as session:
                details = is_healthy(session)
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(f"Database health check failed: {e}")
            return CheckResult(check="database_connection", success=False, message="Database unreachable", details={"error": str(e)})

        success = details.get("status") == "healthy"
        if success:
            message = "Database connection is healthy"
        elif details.get("missing_tables"):
            message = "Database schema is not migrated"
        else:
            message = "Database connection failed"
        return CheckResult(check="database_connection", success=success, message=message, details=details)

    async def check_event_system(self, system: EventSystem | None) -> CheckResult:
        if system is None or not system.initialized:
            return CheckResult(check="event_bus", success=False, message="Event system not initialized")

        healthy = await system.bus.is_healthy()
        return CheckResult(
            check="event_bus",
            success=healthy,
            message="Event bus is connected" if healthy else "Event bus is not connected",
            details={
                "adapter": type(system.bus).__name__,
                "subscriptions": len(system.bus.get_registered_event_types()),
                "connected_users": system.connections.connected_user_count(),
                "push_enabled": system.delivery is not None,
            },
        )

    async def perform_health_check(self, system: EventSystem | None) -> HealthCheckResult:
        """Run every check; the overall status is ``ok`` only if all of them pass."""
        checks = [await run_in_threadpool(_timed, self.check_database), await _timed_async(self.check_event_system, system)]
        status = "ok" if all(check.success for check in checks) else "error"
        if status != "ok":
            logger.warning(f"Health check failed: {[check.check for check in checks if not check.success]}")
        return HealthCheckResult(status=status, version_info=get_version().model_dump(), checks=checks)


@lru_cache
def get_health_check_service() -> HealthCheckService:
    """Return cached process-wide ``HealthCheckService`` (singleton)."""
    return HealthCheckService()
