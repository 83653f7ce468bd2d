"""Periodic background jobs.

All jobs run on one ``AsyncIOScheduler`` in UTC, each with a single running
instance. Only one process should run the scheduler (see
``MOMENT_NOTIFY_SCHEDULER_ENABLED``); there is no cross-process lock.

| job | trigger |
|---|---|
| scheduled event sweep | every 60 s |
| push receipt check | every 5 min |
| suspected token revalidation | hourly |
| notification and scheduled event cleanup | daily 02:00 |
| stale device cleanup | daily 04:00 |
| event store cleanup | Sunday 03:00 |
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger
from sqlmodel import Session

from moment_notify.constants import EVENT_STORE_RETENTION_DAYS, NOTIFICATION_RETENTION_DAYS, SCHEDULED_EVENT_RETENTION_DAYS
from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.jobs.scheduled_events import ScheduledEventSweeper
from moment_notify.services.device_service import get_device_service
from moment_notify.services.event_store_service import get_event_store_service
from moment_notify.services.notification_service import get_notification_service
from moment_notify.services.push_delivery_service import PushDeliveryService
from moment_notify.services.push_ticket_service import get_push_ticket_service
from moment_notify.services.scheduled_event_service import get_scheduled_event_service
from moment_notify.settings import Settings
from moment_notify.utils.clock import days_ago


class MaintenanceScheduler:
    """Owns the APScheduler instance and the job bodies."""

    def __init__(
        self,
        settings: Settings,
        sweeper: ScheduledEventSweeper,
        delivery: PushDeliveryService | None,
        session_factory: SessionFactory = borrow_db_session,
    ) -> None:
        self._settings = settings
        self._sweeper = sweeper
        self._delivery = delivery
        self._session_factory = session_factory
        self._running: set[asyncio.Task] = set()
        self.scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 300},
            timezone="UTC",
        )

    def _add(self, job_id: str, func: Callable[[], Awaitable[Any]], trigger) -> None:
        self.scheduler.add_job(self._guarded(job_id, func), trigger=trigger, id=job_id, name=job_id, replace_existing=True)

    def _guarded(self, job_id: str, func: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[None]]:
        """Wrap a job so a failing run is logged and contributes nothing that cycle.

        Runs are tracked until they finish so that ``stop`` can wait for them.
        """

        async def run() -> None:
            task = asyncio.current_task()
            self._running.add(task)
            try:
                result = await func()
                logger.debug(f"Job {job_id} finished: {result}")
            except Exception as e:  # noqa: BLE001
                logger.error(f"Job {job_id} failed: {e!r}")
            finally:
                self._running.discard(task)

        return run

    def jobs(self) -> dict[str, tuple[Callable[[], Awaitable[Any]], Any]]:
        """Job bodies and their triggers, keyed by job id."""
        jobs: dict[str, tuple[Callable[[], Awaitable[Any]], Any]] = {
            "scheduled-event-sweep": (self._sweeper.sweep, IntervalTrigger(seconds=self._settings.sweep_interval_seconds)),
        }
        if self._delivery is not None:
            jobs["push-receipt-check"] = (
                self._delivery.check_receipts,
                IntervalTrigger(seconds=self._settings.receipt_check_interval_seconds),
            )
            jobs["token-revalidation"] = (
                self._delivery.revalidate_suspected_devices,
                IntervalTrigger(seconds=self._settings.revalidation_interval_seconds),
            )
        jobs["notification-cleanup"] = (self.cleanup_notifications, CronTrigger(hour=2, minute=0))
        jobs["stale-device-cleanup"] = (self.cleanup_stale_devices, CronTrigger(hour=4, minute=0))
        jobs["event-store-cleanup"] = (self.cleanup_event_store, CronTrigger(day_of_week="sun", hour=3, minute=0))
        return jobs

    async def run_once(self, job_id: str) -> Any:
        """Run one job immediately, outside the schedule; errors propagate.

        Raises:
            KeyError: If no job has this id
        """
        func, _trigger = self.jobs()[job_id]
        return await func()

    def start(self) -> None:
        if self.scheduler.running:
            return

        for job_id, (func, trigger) in self.jobs().items():
            self._add(job_id, func, trigger)

        self.scheduler.start()
        logger.info(f"Maintenance scheduler started with {len(self.scheduler.get_jobs())} jobs")

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop scheduling new runs and wait up to ``timeout`` seconds for running ones.

        The asyncio executor cancels whatever is still running on shutdown, so
        in-flight jobs are awaited first while the bus and database are still up.
        """
        if not self.scheduler.running:
            return

        self.scheduler.pause()
        if self._running:
            logger.info(f"Waiting for {len(self._running)} running jobs")
            _done, pending = await asyncio.wait(set(self._running), timeout=timeout)
            if pending:
                logger.warning(f"{len(pending)} jobs still running at shutdown will be cancelled")
        self.scheduler.shutdown(wait=False)
        logger.info("Maintenance scheduler stopped")

    def get_job_status(self) -> list[dict[str, Any]]:
        """Id and next run time of every scheduled job."""
        return [
            {
                "id": job.id,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    async def cleanup_notifications(self) -> dict[str, int]:
        """Purge old notifications and finished scheduled events and push tickets."""

        def purge(session: Session) -> dict[str, int]:
            return {
                "notifications": get_notification_service().delete_older_than(session, days_ago(NOTIFICATION_RETENTION_DAYS)),
                "scheduled_events": get_scheduled_event_service().delete_finished_older_than(session, days_ago(SCHEDULED_EVENT_RETENTION_DAYS)),
                "push_tickets": get_push_ticket_service().delete_checked_older_than(session, days_ago(SCHEDULED_EVENT_RETENTION_DAYS)),
            }

        deleted = await run_in_session(purge, self._session_factory)
        logger.info(f"Cleaned up {deleted['notifications']} notifications, {deleted['scheduled_events']} scheduled events, {deleted['push_tickets']} push tickets")
        return deleted

    async def cleanup_event_store(self) -> int:
        deleted = await run_in_session(
            lambda session: get_event_store_service().delete_older_than(session, days_ago(EVENT_STORE_RETENTION_DAYS)),
            self._session_factory,
        )
        logger.info(f"Cleaned up {deleted} event store records")
        return deleted

    async def cleanup_stale_devices(self) -> int:
        return await run_in_session(get_device_service().cleanup_stale_tokens, self._session_factory)
