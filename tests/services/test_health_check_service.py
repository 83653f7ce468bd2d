"""Tests for the health check service."""

from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from moment_notify.event_bus import InMemoryEventBus
from moment_notify.events.system import EventSystem
from moment_notify.services.health_check_service import HealthCheckService
from moment_notify.settings import Settings


class TestDatabaseCheck:
    def test_migrated_database_is_healthy(self, session_factory):
        result = HealthCheckService(session_factory).check_database()

        assert result.success
        assert result.details == {"status": "healthy", "connection": "active"}

    def test_unmigrated_database_reports_missing_tables(self):
        empty = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

        @contextmanager
        def borrow():
            with Session(empty) as session:
                yield session

        result = HealthCheckService(borrow).check_database()

        assert not result.success
        assert result.message == "Database schema is not migrated"
        assert "user_devices" in result.details["missing_tables"]

    def test_unreachable_database(self):
        @contextmanager
        def borrow():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
            yield

        result = HealthCheckService(borrow).check_database()

        assert not result.success
        assert result.message == "Database unreachable"


class TestPerformHealthCheck:
    @pytest.mark.asyncio
    async def test_ok_with_initialized_event_system(self, session_factory):
        system = EventSystem(Settings(_env_file=None, push_enabled=False), bus=InMemoryEventBus(), session_factory=session_factory)
        await system.init()
        try:
            result = await HealthCheckService(session_factory).perform_health_check(system)
        finally:
            await system.shutdown()

        assert result.status == "ok"
        assert [check.check for check in result.checks] == ["database_connection", "event_bus"]
        assert result.checks[1].details["push_enabled"] is False

    @pytest.mark.asyncio
    async def test_error_without_event_system(self, session_factory):
        result = await HealthCheckService(session_factory).perform_health_check(None)

        assert result.status == "error"
        assert result.checks[1].message == "Event system not initialized"
