"""OID Sync — Scheduler Jobs.

One APScheduler BackgroundScheduler serves two roles: its scheduling thread
evaluates the config-driven trigger for the periodic sweep, and its bounded
thread pool runs every sync (scheduled or requested through the API). Sync
runs block until finished, so they never execute on the request loop.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from oidsync.config import settings
from oidsync.database import engine
from oidsync.models.hli_models import GroupMembersRequest
from oidsync.scheduler.config_service import SchedulerConfigService
from oidsync.scheduler.trigger import ConfigDrivenTrigger
from oidsync.sync.pipeline import OidSyncService
from oidsync.core.logging import get_logger

logger = get_logger("scheduler")

SYNC_JOB_ID = "oid_processing"

scheduler = BackgroundScheduler(
    executors={"default": ThreadPoolExecutor(settings.sync_worker_threads)},
    job_defaults={"coalesce": True, "max_instances": 1},
    timezone=settings.scheduler_timezone,
)

config_service = SchedulerConfigService(
    engine, ttl_seconds=settings.scheduler_config_cache_ttl_seconds
)


class WorkerPoolUnavailable(RuntimeError):
    """Raised when work is submitted while the scheduler is not running."""


def get_sync_service() -> OidSyncService:
    return OidSyncService(engine)


# ── Job bodies (run on the worker pool) ──


def scheduled_processing() -> None:
    """Periodic sweep. Skips if the job was disabled since the trigger fired."""
    job_name = settings.scheduler_job_name
    logger.info(
        "Checking whether scheduled OID processing is enabled",
        extra={"job_name": job_name},
    )
    config = config_service.get_scheduler_config(job_name)
    if not config.enabled:
        logger.info("Scheduled OID processing is disabled", extra={"job_name": job_name})
        return

    logger.info(f"Starting scheduled OID processing with cron: {config.cron_expression}")
    try:
        batch_id = get_sync_service().process_all_pending()
        logger.info("Completed scheduled OID processing", extra={"batch_id": batch_id})
    except Exception as e:
        logger.error(f"Scheduled OID processing failed: {e}", exc_info=True)


def manual_processing() -> Optional[str]:
    """Sweep regardless of the scheduler configuration."""
    logger.info("Starting manual OID processing")
    try:
        batch_id = get_sync_service().process_all_pending()
    except Exception as e:
        logger.error(f"Manual OID processing failed: {e}", exc_info=True)
        raise
    logger.info("Completed manual OID processing", extra={"batch_id": batch_id})
    return batch_id


def on_demand_processing(oids: List[str]) -> None:
    try:
        result = get_sync_service().process_oids(oids)
        logger.info(
            f"On-demand processing finished for {len(result.oids)} known OIDs",
            extra={"batch_id": result.batch_id},
        )
    except Exception as e:
        logger.error(f"On-demand OID processing failed: {e}", exc_info=True)


def on_demand_request_processing(request: GroupMembersRequest) -> None:
    try:
        batch_id = get_sync_service().process_oids_with_request(request)
        logger.info(
            f"Request {request.id} processing finished", extra={"batch_id": batch_id}
        )
    except Exception as e:
        logger.error(f"Request {request.id} processing failed: {e}", exc_info=True)


# ── Scheduler lifecycle ──


def start_scheduler() -> None:
    """Start the worker pool and, unless disabled, the periodic sweep."""
    if settings.scheduler_enabled:
        scheduler.add_job(
            scheduled_processing,
            ConfigDrivenTrigger(
                settings.scheduler_job_name,
                config_service,
                timezone=settings.scheduler_timezone,
            ),
            id=SYNC_JOB_ID,
            replace_existing=True,
            misfire_grace_time=3600,
        )
    else:
        logger.info("Periodic sync disabled via config; worker pool only")

    scheduler.start()
    job = scheduler.get_job(SYNC_JOB_ID)
    logger.info(
        f"Scheduler started with {settings.sync_worker_threads} workers. "
        f"Next sweep: {job.next_run_time if job else 'never'}"
    )


def refresh_schedule() -> Optional[datetime]:
    """Recompute the sweep's next fire time after a configuration change."""
    job = scheduler.get_job(SYNC_JOB_ID)
    if job is None:
        return None
    next_run = job.trigger.get_next_fire_time(None, datetime.now(timezone.utc))
    scheduler.modify_job(SYNC_JOB_ID, next_run_time=next_run)
    logger.info(f"Rescheduled OID processing for {next_run}")
    return next_run


def submit_job(func: Callable, *args, name: Optional[str] = None) -> str:
    """Queue one-off work on the worker pool. Returns the job id."""
    if not scheduler.running:
        raise WorkerPoolUnavailable("Worker pool is not running")
    job = scheduler.add_job(
        func, args=list(args), name=name or func.__name__, misfire_grace_time=None
    )
    logger.info(f"Queued job {job.name} ({job.id})")
    return job.id


def stop_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
