"""
APScheduler integration for FastAPI.

Runs the fail-safe sweeper in-process on a fixed interval. Each pass records
its own SweepRun, so the scheduler only has to keep the schedule.
"""

from datetime import datetime

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.interval import IntervalTrigger

from notifier.config import get_config, get_settings
from notifier.core.database import AsyncSessionLocal
from notifier.core.datetime_utils import to_naive_utc
from notifier.core.logging import get_logger
from notifier.services.sweeper import TRIGGER_SCHEDULED, run_sweep

logger = get_logger(__name__)

SWEEPER_SCHEDULE_ID = "sweep_stale_jobs"

# Global scheduler instance
scheduler: AsyncScheduler | None = None


async def sweeper_job() -> None:
    """Reclaim jobs stuck in processing."""
    logger.debug("scheduled_sweep_started")
    async with AsyncSessionLocal() as db:
        try:
            run = await run_sweep(db, TRIGGER_SCHEDULED)
            logger.bind(reclaimed=run.reclaimed).debug("scheduled_sweep_completed")
        except Exception as e:
            logger.bind(error=str(e)).error("scheduled_sweep_failed")
            raise  # Re-raise so APScheduler records the failure


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the scheduler with in-memory schedules."""
    global scheduler

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    interval = get_config().sweeper.interval_seconds

    scheduler = AsyncScheduler(data_store=MemoryDataStore())

    # APScheduler 4.x must be entered before schedules can be added
    await scheduler.__aenter__()

    await scheduler.add_schedule(
        sweeper_job,
        IntervalTrigger(seconds=interval),
        id=SWEEPER_SCHEDULE_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.start_in_background()

    logger.bind(schedules=[SWEEPER_SCHEDULE_ID], sweep_interval=interval).info("scheduler_started")

    return scheduler


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


async def next_sweep_at() -> datetime | None:
    """When the scheduled sweeper fires next; None if the scheduler is off."""
    if not scheduler:
        return None

    schedule = await scheduler.get_schedule(SWEEPER_SCHEDULE_ID)
    if schedule.next_fire_time is None:
        return None
    return to_naive_utc(schedule.next_fire_time)
