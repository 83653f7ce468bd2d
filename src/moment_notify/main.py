"""Main entry point for the notification server using Typer and Pydantic Settings."""

import asyncio
from typing import Any

import typer
import uvicorn
from loguru import logger

from moment_notify.logging import setup_logging
from moment_notify.settings import get_settings

app = typer.Typer()


HOST_OPTION = typer.Option(
    None,
    help="Host to bind the server to (overrides MOMENT_NOTIFY_HOST)",
    metavar="<server>",
)  # fmt: skip
PORT_OPTION = typer.Option(
    None,
    help="Port to bind the server to (overrides MOMENT_NOTIFY_PORT)",
    metavar="<port>",
)  # fmt: skip
RELOAD_OPTION = typer.Option(
    None,
    help="Enable/disable auto-reload (overrides MOMENT_NOTIFY_RELOAD)",
)  # fmt: skip
LOG_LEVEL_OPTION = typer.Option(
    None,
    help="Log level (overrides MOMENT_NOTIFY_LOG_LEVEL)",
    metavar="<level>",
    case_sensitive=False,
)  # fmt: skip
SQL_LOG_OPTION = typer.Option(
    None,
    help="Enable/disable SQL query logging (overrides MOMENT_NOTIFY_SQL_LOG)",
)  # fmt: skip
DATABASE_URL_OPTION = typer.Option(
    None,
    help="Database URL (overrides MOMENT_NOTIFY_DATABASE_URL)",
    metavar="<dsn>",
)  # fmt: skip
EVENT_BUS_OPTION = typer.Option(
    None,
    "--event-bus",
    help="Event bus adapter: memory or kafka (overrides MOMENT_NOTIFY_EVENT_BUS_ADAPTER)",
    metavar="<adapter>",
)  # fmt: skip
SCHEDULER_OPTION = typer.Option(
    None,
    help="Enable/disable the maintenance scheduler (overrides MOMENT_NOTIFY_SCHEDULER_ENABLED)",
)  # fmt: skip


def _update_settings(
    host: str | None,
    port: int | None,
    log_level: str | None,
    reload: bool | None,
    sql_log: bool | None,
    database_url: str | None,
    event_bus: str | None,
    scheduler: bool | None,
) -> None:
    """Update settings with CLI overrides."""
    settings = get_settings()

    if host is not None:
        settings.host = host
    if port is not None:
        settings.port = port
    if log_level is not None:
        settings.log_level = log_level.upper()
    if reload is not None:
        settings.reload = reload
    if sql_log is not None:
        settings.sql_log = sql_log
    if database_url is not None:
        settings.database_url = database_url
    if event_bus is not None:
        settings.event_bus_adapter = event_bus
    if scheduler is not None:
        settings.scheduler_enabled = scheduler


@app.command()
def run(
    host: str = HOST_OPTION,
    port: int = PORT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
    reload: bool = RELOAD_OPTION,
    sql_log: bool = SQL_LOG_OPTION,
    database_url: str = DATABASE_URL_OPTION,
    event_bus: str = EVENT_BUS_OPTION,
    scheduler: bool = SCHEDULER_OPTION,
) -> None:
    """Run the notification server."""
    _update_settings(host, port, log_level, reload, sql_log, database_url, event_bus, scheduler)

    settings = get_settings()

    setup_logging(settings.log_level, json_logs=settings.log_json)

    logger.info(f"Starting notification server on {settings.host}:{settings.port}")
    logger.info(f"Event bus: {settings.event_bus_adapter}")
    logger.info(f"Reload: {settings.reload}")

    # Run the app - use import string for reload mode
    if settings.reload:
        uvicorn.run(
            "moment_notify.app:app",
            host=settings.host,
            port=settings.port,
            reload=True,
            log_level=settings.log_level.lower(),
        )
    else:
        from moment_notify.app import app as fastapi_app

        uvicorn.run(
            fastapi_app,
            host=settings.host,
            port=settings.port,
            reload=False,
            log_level=settings.log_level.lower(),
        )


JOB_ARGUMENT = typer.Argument(
    ...,
    help="Job id, e.g. scheduled-event-sweep, push-receipt-check, token-revalidation, notification-cleanup",
    metavar="<job>",
)  # fmt: skip


async def _run_job(job_id: str) -> Any:
    from moment_notify.database import dispose_db
    from moment_notify.events.system import EventSystem
    from moment_notify.jobs.maintenance_scheduler import MaintenanceScheduler

    system = EventSystem(get_settings())
    await system.init()
    try:
        scheduler = MaintenanceScheduler(system.settings, system.sweeper, system.delivery)
        return await scheduler.run_once(job_id)
    finally:
        await system.shutdown()
        dispose_db()


@app.command("run-job")
def run_job(
    job_id: str = JOB_ARGUMENT,
    log_level: str = LOG_LEVEL_OPTION,
    database_url: str = DATABASE_URL_OPTION,
    event_bus: str = EVENT_BUS_OPTION,
) -> None:
    """Run one maintenance job immediately, e.g. from cron when the in-process scheduler is disabled."""
    _update_settings(None, None, log_level, None, None, database_url, event_bus, None)
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    try:
        result = asyncio.run(_run_job(job_id))
    except KeyError:
        logger.error(f"Unknown job: {job_id}")
        raise typer.Exit(code=2) from None

    logger.info(f"Job {job_id} finished: {result}")


@app.command()
def version() -> None:
    """Print the installed version."""
    from moment_notify.utils.version import get_version

    typer.echo(get_version().full_version)


if __name__ == "__main__":
    app()
