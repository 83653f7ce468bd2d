"""Service registry for dependency injection.

Services are keyed by type name. Stateless services are registered as
factories (their ``get_*_service`` functions are already cached); the
``EventSystem`` is registered as a singleton for the lifetime of the
application and removed again on shutdown.
"""

from collections.abc import Callable
from functools import lru_cache
from typing import Any, TypeVar, cast

T = TypeVar("T")
ServiceFactory = Callable[[], T]
ServiceProvider = T | ServiceFactory[T]


class ServiceRegistry:
    """Registry for all shared services with support for singletons and factories."""

    def __init__(self):
        self._services: dict[str, ServiceProvider[Any]] = {}

    def register_singleton(self, service_type: type[T], instance: T) -> None:
        """Register a singleton instance by its type."""
        self._services[service_type.__name__] = instance

    def register_factory(self, service_type: type[T], factory: ServiceFactory[T]) -> None:
        """Register a factory function by its type; it is called on every ``get``."""
        self._services[service_type.__name__] = factory

    def unregister(self, service_type: type[Any]) -> None:
        """Remove a service; unknown types are ignored."""
        self._services.pop(service_type.__name__, None)

    def is_registered(self, service_type: type[Any]) -> bool:
        return service_type.__name__ in self._services

    def get(self, service_type: type[T]) -> T:
        """Get a service instance by type.

        Args:
            service_type: The type of the service to retrieve

        Returns:
            An instance of the requested service

        Raises:
            KeyError: If the requested service is not registered
        """
        service_name = service_type.__name__

        if service_name not in self._services:
            raise KeyError(f"Service {service_name} not registered")

        provider = self._services[service_name]

        # Factories are plain callables; registered instances are returned as is
        if callable(provider) and not isinstance(provider, type) and not isinstance(provider, service_type):
            return provider()

        return cast(T, provider)

    def get_optional(self, service_type: type[T]) -> T | None:
        """Like ``get`` but returns None for an unregistered service."""
        if not self.is_registered(service_type):
            return None
        return self.get(service_type)


@lru_cache
def get_service_registry() -> ServiceRegistry:
    """Get the singleton service registry instance.

    Returns:
        The global service registry instance
    """
    return ServiceRegistry()
