"""
Fail-safe sweeper: returns jobs abandoned in processing to the queue.

A worker that dies between claim and outcome write leaves its job in
processing forever. Anything in processing longer than the stale threshold
is assumed abandoned and made pending again.

Every pass is recorded as a SweepRun so operators can see how often jobs
get stuck and how many each pass recovered.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config import SweeperConfig, get_config
from notifier.core.datetime_utils import get_cutoff, utc_now
from notifier.core.logging import get_logger
from notifier.models.sweep_run import SweepRun
from notifier.services import job_store

logger = get_logger(__name__)

RECLAIM_MARKER = "Reclaimed by sweeper: stuck in processing"

TRIGGER_SCHEDULED = "scheduled"
TRIGGER_MANUAL = "manual"

OUTCOME_SUCCESS = "success"
OUTCOME_ERROR = "error"


async def sweep_stale_jobs(db: AsyncSession, config: SweeperConfig | None = None) -> int:
    """
    Reclaim processing jobs older than the stale threshold.

    retry_count is left unchanged; the marker in error_message tells the
    operator the job went through a reclaim.

    Returns:
        Number of jobs moved back to pending
    """
    config = config or get_config().sweeper
    cutoff = get_cutoff(seconds=config.stale_after_seconds)

    reclaimed = await job_store.reclaim_stale(db, cutoff, RECLAIM_MARKER)

    if reclaimed:
        logger.bind(reclaimed=reclaimed, cutoff=cutoff.isoformat()).warning("stale_jobs_reclaimed")
    else:
        logger.debug("sweep_found_nothing")
    return reclaimed


async def run_sweep(
    db: AsyncSession,
    trigger: str = TRIGGER_SCHEDULED,
    config: SweeperConfig | None = None,
) -> SweepRun:
    """
    Sweep once and record the pass.

    A failed sweep is recorded with outcome "error" and the exception is
    re-raised.
    """
    config = config or get_config().sweeper
    run = SweepRun(
        trigger=trigger,
        started_at=utc_now(),
        stale_after_seconds=config.stale_after_seconds,
        reclaimed=0,
    )
    try:
        run.reclaimed = await sweep_stale_jobs(db, config)
        run.outcome = OUTCOME_SUCCESS
    except Exception as e:
        run.outcome = OUTCOME_ERROR
        run.error = str(e)
        raise
    finally:
        run.finished_at = utc_now()
        await _save_run(db, run)
    return run


async def _save_run(db: AsyncSession, run: SweepRun) -> None:
    db.add(run)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        # History is best effort; the sweep result itself is already committed
        await db.rollback()
        logger.bind(trigger=run.trigger, error=str(e)).error("sweep_run_not_recorded")


async def recent_runs(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
    reclaimed_only: bool = False,
) -> list[SweepRun]:
    """Sweep history, newest first."""
    query = select(SweepRun).order_by(SweepRun.started_at.desc())
    if reclaimed_only:
        query = query.where(SweepRun.reclaimed > 0)
    result = await db.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all())


async def last_run(db: AsyncSession) -> SweepRun | None:
    runs = await recent_runs(db, limit=1)
    return runs[0] if runs else None


async def count_stale(db: AsyncSession, config: SweeperConfig | None = None) -> int:
    """How many processing jobs are past the threshold right now."""
    config = config or get_config().sweeper
    return await job_store.count_stale(db, get_cutoff(seconds=config.stale_after_seconds))
