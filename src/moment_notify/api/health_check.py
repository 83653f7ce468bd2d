"""Health check API endpoint."""

from fastapi import APIRouter, Depends, Response, status
from loguru import logger

from moment_notify.events.system import EventSystem
from moment_notify.services.health_check_service import HealthCheckResult, HealthCheckService, get_health_check_service
from moment_notify.services.registry import get_service_registry

router = APIRouter(tags=["System"])

health_service_dependency = Depends(get_health_check_service)


def _current_event_system() -> EventSystem | None:
    return get_service_registry().get_optional(EventSystem)


@router.get("/health-check", response_model=HealthCheckResult)
async def health_check(
    response: Response,
    health_service: HealthCheckService = health_service_dependency,
    system: EventSystem | None = Depends(_current_event_system),
) -> HealthCheckResult:
    """Health of the database and the event bus.

    Responds with 503 when any check fails.
    """
    logger.debug("Health check requested")
    result = await health_service.perform_health_check(system)
    if result.status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result
