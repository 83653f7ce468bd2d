"""Common exceptions for the notification core.

This module contains the delivery and persistence error taxonomy shared by
the publisher, the subscribers and the push pipeline. Bus-level errors
(``NotConnectedError`` and friends) live in ``moment_notify.event_bus.core``.
"""

from uuid import UUID


class MomentNotifyError(Exception):
    """Root of the notification core exception hierarchy."""


class TransientDeliveryError(MomentNotifyError):
    """Raised when a provider or broker fails temporarily.

    Retried by the existing mechanisms (sweeper attempts, failure counters,
    connection backoff), never escalated to the publishing caller.
    """

    def __init__(self, message: str, target: str | None = None):
        self.target = target
        super().__init__(message)


class PermanentTargetError(MomentNotifyError):
    """Raised when the provider confirms a destination is permanently unreachable.

    Triggers immediate deactivation of the target and is never retried.
    """

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Target permanently unreachable ({reason}): {target}")


class PersistenceError(MomentNotifyError):
    """Raised when the store is unavailable for a write that must not be lost.

    Only the creation of a scheduled event surfaces this to the caller; the
    best-effort writers log and swallow it.
    """


class ResourceNotFoundError(MomentNotifyError):
    """Raised when a resource doesn't exist.

    Generic exception for any resource that cannot be found by its identifier.
    """

    def __init__(self, resource_type: str, identifier: str | UUID | int):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} not found: {identifier}")
