"""Operator endpoints for the fail-safe sweeper."""

from fastapi import APIRouter, Query

from notifier.core.scheduler import next_sweep_at
from notifier.dependencies import Config, DBSession
from notifier.schemas.sweeper import SweepRunResponse, SweeperStatusResponse
from notifier.services import sweeper

router = APIRouter()


@router.get("/sweeper/status", response_model=SweeperStatusResponse)
async def sweeper_status(db: DBSession, app_config: Config) -> SweeperStatusResponse:
    """Schedule, stuck-job count and the most recent pass."""
    config = app_config.sweeper
    next_run_at = await next_sweep_at()
    last = await sweeper.last_run(db)

    return SweeperStatusResponse(
        scheduled=next_run_at is not None,
        interval_seconds=config.interval_seconds,
        stale_after_seconds=config.stale_after_seconds,
        next_run_at=next_run_at,
        stale_jobs=await sweeper.count_stale(db, config),
        last_run=SweepRunResponse.model_validate(last) if last else None,
    )


@router.get("/sweeper/runs", response_model=list[SweepRunResponse])
async def list_sweep_runs(
    db: DBSession,
    reclaimed_only: bool = Query(default=False, description="Only passes that reclaimed jobs"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[SweepRunResponse]:
    """Sweep history, newest first."""
    runs = await sweeper.recent_runs(db, limit=limit, offset=offset, reclaimed_only=reclaimed_only)
    return [SweepRunResponse.model_validate(run) for run in runs]


@router.post("/sweeper/run", response_model=SweepRunResponse)
async def run_sweep_now(db: DBSession, app_config: Config) -> SweepRunResponse:
    """Reclaim stuck jobs now instead of waiting for the next scheduled pass."""
    run = await sweeper.run_sweep(db, sweeper.TRIGGER_MANUAL, app_config.sweeper)
    return SweepRunResponse.model_validate(run)
