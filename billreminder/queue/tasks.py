"""Background jobs for the reminder worker.

Uses arq (async Redis queue). The worker runs the automatic reminder sweep as
a cron job every minute and runs global overdue sends queued through
POST /api/v1/reminders/send-overdue/queue (APP_QUEUE_ENABLED=true on the
API). It is the deployment option for running the sweep outside the API process; set
APP_SCHEDULER_ENABLED=false on the API when the worker is used.

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from billreminder.reminders.service import ReminderService, create_reminder_service
from billreminder.shared.config import get_settings

logger = logging.getLogger(__name__)


def _service(ctx: dict[str, Any]) -> ReminderService:
    service: ReminderService = ctx["reminder_service"]
    return service


async def reminder_tick(ctx: dict[str, Any]) -> dict[str, Any]:
    """Cron job: one automatic reminder sweep.

    Returns:
        TickReport as dict (kept by arq as the job result)
    """
    report = await _service(ctx).scheduler.tick()
    if report.failed:
        logger.warning(f"Reminder sweep finished with {report.failed} failure(s)")
    return report.model_dump(mode="json")


async def send_overdue_reminders(ctx: dict[str, Any]) -> dict[str, Any]:
    """Job: send an overdue reminder to every company with overdue invoices."""
    logger.info(f"Running queued overdue send (job {ctx.get('job_id')})")
    report = await _service(ctx).send_all_overdue()
    return report.model_dump(mode="json")


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook - build the shared reminder service once."""
    logger.info("Initializing worker services...")
    settings = get_settings()
    if settings.storage_backend != "redis":
        logger.warning(
            "Worker is using in-memory storage; it will not see invoices imported "
            "through the API. Set APP_STORAGE_BACKEND=redis."
        )
    ctx["settings"] = settings
    ctx["reminder_service"] = create_reminder_service(settings)
    logger.info("Worker services initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook - release provider and store connections."""
    logger.info("Worker shutting down...")
    service = ctx.get("reminder_service")
    if service is not None:
        await service.aclose()


class WorkerSettings:
    """arq worker settings.

    Defines the worker configuration including:
    - Job functions and the per-minute reminder sweep
    - Redis connection settings
    - Job timeout settings
    """

    functions = [send_overdue_reminders]
    cron_jobs = [cron(reminder_tick, second=0, unique=True)]
    on_startup = startup
    on_shutdown = shutdown

    # These will be set from environment
    redis_settings = None
    max_jobs = 10
    job_timeout = 300

    @classmethod
    def get_redis_settings(cls) -> RedisSettings:
        """Get Redis settings from configuration."""
        return RedisSettings.from_dsn(get_settings().redis_url)
