"""Main FastAPI application module."""

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from moment_notify.api.api_router import router as api_router
from moment_notify.api.health_check import router as health_router
from moment_notify.api.ping import router as ping_router
from moment_notify.api.version import router as version_router
from moment_notify.database import dispose_db
from moment_notify.events.system import EventSystem
from moment_notify.exception_handlers import register_exception_handlers
from moment_notify.jobs.maintenance_scheduler import MaintenanceScheduler
from moment_notify.logging import setup_logging, setup_sqlalchemy_logging
from moment_notify.services.di import register_all_services
from moment_notify.services.registry import get_service_registry
from moment_notify.settings import Settings, get_settings
from moment_notify.utils.version import get_version
from moment_notify.websocket.endpoint import router as websocket_router

Lifespan = Callable[[FastAPI], AbstractAsyncContextManager[None]]


def _log_server_endpoints_summary(settings: Settings) -> None:
    """Log the server URL and the available endpoints.

    Args:
        settings: Application settings containing host and port
    """
    server_url = f"http://{settings.host}:{settings.port}"
    logger.info(f"Server running at: {server_url}")

    endpoints = [
        ("Health Check", "/health-check"),
        ("Ping", "/ping"),
        ("Version", "/version"),
        ("REST API", "/api"),
        ("WebSocket", "/ws"),
        ("API Docs", "/docs"),
    ]
    logger.info("Available endpoints:")
    for name, path in endpoints:
        logger.info(f"   {name}: {server_url}{path}")


@asynccontextmanager
async def app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Handle startup and shutdown of the notification core.

    Startup order: logging, service registry, event system (bus connection and
    subscribers), then the maintenance scheduler. Shutdown runs in reverse.
    """
    settings = get_settings()
    _app.state.settings = settings  # type: ignore[attr-defined]

    setup_logging(log_level=settings.log_level, json_logs=settings.log_json)
    if settings.sql_log:
        setup_sqlalchemy_logging()

    logger.info("Registering services in the service registry")
    registry = get_service_registry()
    register_all_services(registry)

    system = EventSystem(settings)
    await system.init()
    registry.register_singleton(EventSystem, system)
    _app.state.event_system = system  # type: ignore[attr-defined]

    scheduler: MaintenanceScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = MaintenanceScheduler(settings, system.sweeper, system.delivery)
        scheduler.start()
    else:
        logger.info("Maintenance scheduler disabled (MOMENT_NOTIFY_SCHEDULER_ENABLED=false)")
    _app.state.scheduler = scheduler  # type: ignore[attr-defined]

    _log_server_endpoints_summary(settings)

    yield

    logger.info("Notification server shutting down")

    if scheduler is not None:
        await scheduler.stop()
    registry.unregister(EventSystem)
    await system.shutdown()
    dispose_db()


def create_app(lifespan: Lifespan | None = app_lifespan) -> FastAPI:
    """Build the FastAPI application.

    Args:
        lifespan: Startup/shutdown context; tests pass ``None`` and wire the event system themselves
    """
    application = FastAPI(
        lifespan=lifespan,
        title="Moment notification server",
        description="Event bus, push delivery and real-time sockets for the Moment scheduling app",
        version=get_version().version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)

    # System endpoints
    application.include_router(health_router, prefix="")
    application.include_router(ping_router, prefix="")
    application.include_router(version_router, prefix="/version")

    application.include_router(api_router, prefix="/api")
    application.include_router(websocket_router)

    return application


app = create_app()
