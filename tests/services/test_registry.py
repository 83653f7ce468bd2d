"""Tests for the service registry and DI registration."""

import pytest

from moment_notify.services.device_service import DeviceService, get_device_service
from moment_notify.services.di import register_all_services
from moment_notify.services.health_check_service import HealthCheckService
from moment_notify.services.notification_service import NotificationService
from moment_notify.services.push_ticket_service import PushTicketService
from moment_notify.services.registry import ServiceRegistry, get_service_registry


class FakeEventSystem:
    """Stands in for a lifecycle object registered as a singleton."""

    def __init__(self, name: str = "system"):
        self.name = name


class TestServiceRegistry:
    """Singleton and factory registration."""

    def test_register_and_get_singleton(self):
        registry = ServiceRegistry()
        system = FakeEventSystem("singleton")
        registry.register_singleton(FakeEventSystem, system)

        assert registry.get(FakeEventSystem) is system

    def test_factory_is_called_on_every_get(self):
        registry = ServiceRegistry()
        calls = 0

        def factory() -> FakeEventSystem:
            nonlocal calls
            calls += 1
            return FakeEventSystem("factory")

        registry.register_factory(FakeEventSystem, factory)
        first = registry.get(FakeEventSystem)
        second = registry.get(FakeEventSystem)

        assert calls == 2
        assert first is not second
        assert second.name == "factory"

    def test_cached_factory_yields_the_same_service(self):
        registry = ServiceRegistry()
        registry.register_factory(DeviceService, get_device_service)

        assert registry.get(DeviceService) is registry.get(DeviceService) is get_device_service()

    def test_get_unregistered_service_raises(self):
        with pytest.raises(KeyError, match="Service FakeEventSystem not registered"):
            ServiceRegistry().get(FakeEventSystem)

    def test_get_optional_and_unregister(self):
        registry = ServiceRegistry()
        assert registry.get_optional(FakeEventSystem) is None

        system = FakeEventSystem()
        registry.register_singleton(FakeEventSystem, system)
        assert registry.is_registered(FakeEventSystem)
        assert registry.get_optional(FakeEventSystem) is system

        registry.unregister(FakeEventSystem)
        registry.unregister(FakeEventSystem)
        assert not registry.is_registered(FakeEventSystem)

    def test_global_registry_is_a_singleton(self):
        assert get_service_registry() is get_service_registry()


class TestRegisterAllServices:
    """The application wiring registers every persistence service."""

    def test_services_are_available(self):
        registry = ServiceRegistry()
        register_all_services(registry)

        for service_type in (HealthCheckService, DeviceService, NotificationService, PushTicketService):
            assert isinstance(registry.get(service_type), service_type)

    def test_event_system_is_not_registered_up_front(self):
        registry = ServiceRegistry()
        register_all_services(registry)

        assert registry.get_optional(FakeEventSystem) is None
