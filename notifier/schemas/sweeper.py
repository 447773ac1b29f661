import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SweepRunResponse(BaseModel):
    """One recorded sweeper pass."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    trigger: str
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    stale_after_seconds: int
    reclaimed: int
    outcome: str
    error: str | None = None


class SweeperStatusResponse(BaseModel):
    """Sweeper health for the operator page."""

    scheduled: bool
    interval_seconds: int
    stale_after_seconds: int
    next_run_at: datetime | None
    # Processing jobs already past the threshold, waiting for the next pass
    stale_jobs: int
    last_run: SweepRunResponse | None
