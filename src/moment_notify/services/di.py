"""Dependency injection setup module.

This module provides centralized service registration for the FastAPI
server and the background jobs.
"""

from loguru import logger

from moment_notify.services.device_service import DeviceService, get_device_service
from moment_notify.services.event_store_service import EventStoreService, get_event_store_service
from moment_notify.services.health_check_service import HealthCheckService, get_health_check_service
from moment_notify.services.notification_service import NotificationService, get_notification_service
from moment_notify.services.push_ticket_service import PushTicketService, get_push_ticket_service
from moment_notify.services.registry import ServiceRegistry
from moment_notify.services.scheduled_event_service import ScheduledEventService, get_scheduled_event_service


def register_core_services(registry: ServiceRegistry) -> None:
    """Register core services in the service registry.

    Core services are registered as factories because they're lightweight
    and their get_*_service() functions already provide singleton behavior via @lru_cache.

    Args:
        registry: Service registry instance to register services in
    """
    logger.debug("Registering core services in DI container")

    registry.register_factory(HealthCheckService, get_health_check_service)


def register_app_services(registry: ServiceRegistry) -> None:
    """Register the persistence services of the notification core.

    Args:
        registry: Service registry instance to register services in
    """
    logger.debug("Registering application services in DI container")

    registry.register_factory(DeviceService, get_device_service)
    registry.register_factory(NotificationService, get_notification_service)
    registry.register_factory(ScheduledEventService, get_scheduled_event_service)
    registry.register_factory(EventStoreService, get_event_store_service)
    registry.register_factory(PushTicketService, get_push_ticket_service)


def register_all_services(registry: ServiceRegistry) -> None:
    """Register all services in the service registry.

    The ``EventSystem`` is registered separately as a singleton once it has
    been initialized by the application lifespan.

    Args:
        registry: Service registry instance to register services in
    """
    register_core_services(registry)
    register_app_services(registry)
