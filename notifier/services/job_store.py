"""
Persistence operations for notification jobs.

Every status transition is a single UPDATE guarded by the expected current
status, so concurrent workers, the sweeper and operator actions never
overwrite each other's transitions. Each write commits immediately; a failed
write is rolled back and surfaced as StoreError.
"""

import base64
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.core.datetime_utils import utc_now
from notifier.core.exceptions import StoreError
from notifier.core.logging import get_logger
from notifier.models.notification_job import (
    ACTIVE_STATUSES,
    JobStatus,
    JobType,
    NotificationJob,
)

logger = get_logger(__name__)


@asynccontextmanager
async def _store_write(db: AsyncSession, operation: str, **context: Any) -> AsyncIterator[None]:
    """Run a write and commit it, translating database failures into StoreError."""
    try:
        yield
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.bind(operation=operation, error=str(e), **context).error("job_store_write_failed")
        raise StoreError(f"{operation} failed: {e}") from e


# ---------- Create / read ----------


async def insert_job(
    db: AsyncSession,
    *,
    recipient: str,
    message: str,
    is_group: bool,
    job_type: JobType,
    metadata: dict[str, Any],
) -> NotificationJob:
    """Persist a new pending job."""
    now = utc_now()
    job = NotificationJob(
        recipient=recipient,
        message=message,
        is_group=is_group,
        type=job_type,
        metadata_json=metadata,
        status=JobStatus.PENDING,
        created_at=now,
        updated_at=now,
        error_message="",
        retry_count=0,
    )
    async with _store_write(db, "insert_job", recipient=recipient):
        db.add(job)
        await db.flush()
    return job


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob | None:
    """Load a job, bypassing any stale copy in the session identity map."""
    result = await db.execute(
        select(NotificationJob)
        .where(NotificationJob.id == job_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_pending_ids(db: AsyncSession, limit: int) -> list[uuid.UUID]:
    """Oldest pending job ids first."""
    result = await db.execute(
        select(NotificationJob.id)
        .where(NotificationJob.status == JobStatus.PENDING)
        .order_by(NotificationJob.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------- Conditional transitions ----------


async def _transition(
    db: AsyncSession,
    operation: str,
    job_id: uuid.UUID,
    expected: Sequence[JobStatus] | None,
    **values: Any,
) -> bool:
    """UPDATE one job, optionally only if its status is still in `expected`."""
    stmt = update(NotificationJob).where(NotificationJob.id == job_id)
    if expected is not None:
        stmt = stmt.where(NotificationJob.status.in_(expected))
    stmt = stmt.values(updated_at=utc_now(), **values).execution_options(
        synchronize_session=False
    )

    async with _store_write(db, operation, job_id=str(job_id)):
        result = await db.execute(stmt)
    return result.rowcount == 1


async def claim_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob | None:
    """Compare-and-set pending -> processing.

    Returns the claimed job, or None when another actor got there first or
    the job is no longer pending.
    """
    claimed = await _transition(
        db, "claim_job", job_id, (JobStatus.PENDING,), status=JobStatus.PROCESSING
    )
    if not claimed:
        return None
    return await get_job(db, job_id)


async def mark_sent(db: AsyncSession, job_id: uuid.UUID) -> bool:
    """processing -> sent. False if the job was deleted or reclaimed meanwhile."""
    return await _transition(
        db,
        "mark_sent",
        job_id,
        (JobStatus.PROCESSING,),
        status=JobStatus.SENT,
        error_message="",
    )


async def mark_failed(db: AsyncSession, job_id: uuid.UUID, error: str) -> bool:
    """processing -> failed with a human-readable detail."""
    return await _transition(
        db,
        "mark_failed",
        job_id,
        (JobStatus.PROCESSING,),
        status=JobStatus.FAILED,
        error_message=error,
    )


async def reset_to_pending(db: AsyncSession, job_id: uuid.UUID) -> bool:
    """Unconditional transition to pending (operator retry)."""
    return await _transition(
        db,
        "reset_to_pending",
        job_id,
        None,
        status=JobStatus.PENDING,
        error_message="",
        retry_count=0,
    )


async def update_recipient(
    db: AsyncSession, job_id: uuid.UUID, recipient: str, is_group: bool
) -> bool:
    """Correct the destination of a job that is not in flight or delivered."""
    return await _transition(
        db,
        "update_recipient",
        job_id,
        (JobStatus.PENDING, JobStatus.FAILED),
        recipient=recipient,
        is_group=is_group,
    )


async def reclaim_stale(db: AsyncSession, cutoff: datetime, marker: str) -> int:
    """processing -> pending for every job whose updated_at precedes cutoff."""
    stmt = (
        update(NotificationJob)
        .where(
            NotificationJob.status == JobStatus.PROCESSING,
            NotificationJob.updated_at < cutoff,
        )
        .values(status=JobStatus.PENDING, error_message=marker, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    async with _store_write(db, "reclaim_stale", cutoff=cutoff.isoformat()):
        result = await db.execute(stmt)
    return result.rowcount


# ---------- Deletion / bulk ----------


async def delete_job(db: AsyncSession, job_id: uuid.UUID) -> bool:
    """Remove a job permanently."""
    stmt = (
        delete(NotificationJob)
        .where(NotificationJob.id == job_id)
        .execution_options(synchronize_session=False)
    )
    async with _store_write(db, "delete_job", job_id=str(job_id)):
        result = await db.execute(stmt)
    return result.rowcount == 1


async def retry_failed(db: AsyncSession) -> int:
    """failed -> pending for every failed job, counting the retry."""
    stmt = (
        update(NotificationJob)
        .where(NotificationJob.status == JobStatus.FAILED)
        .values(
            status=JobStatus.PENDING,
            retry_count=NotificationJob.retry_count + 1,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    async with _store_write(db, "retry_failed"):
        result = await db.execute(stmt)
    return result.rowcount


async def delete_active(db: AsyncSession) -> int:
    """Delete every pending or processing job."""
    stmt = (
        delete(NotificationJob)
        .where(NotificationJob.status.in_(ACTIVE_STATUSES))
        .execution_options(synchronize_session=False)
    )
    async with _store_write(db, "delete_active"):
        result = await db.execute(stmt)
    return result.rowcount


# ---------- Listing ----------


def encode_cursor(job: NotificationJob) -> str:
    """Opaque cursor pointing just after `job` in newest-first order."""
    raw = f"{job.created_at.isoformat()}|{job.id.hex}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    """Inverse of encode_cursor. Raises ValueError on malformed input."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        created_at, job_id = raw.split("|", 1)
        return datetime.fromisoformat(created_at), uuid.UUID(hex=job_id)
    except (UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"Invalid cursor: {cursor!r}") from e


async def list_jobs(
    db: AsyncSession,
    status: JobStatus | None = None,
    cursor: str | None = None,
    limit: int = 50,
) -> tuple[list[NotificationJob], str | None]:
    """List jobs newest first with keyset pagination.

    Returns the page and the cursor for the next page (None on the last page).
    """
    query = select(NotificationJob).order_by(
        NotificationJob.created_at.desc(), NotificationJob.id.desc()
    )

    if status is not None:
        query = query.where(NotificationJob.status == status)

    if cursor:
        created_at, job_id = decode_cursor(cursor)
        query = query.where(
            or_(
                NotificationJob.created_at < created_at,
                and_(NotificationJob.created_at == created_at, NotificationJob.id < job_id),
            )
        )

    # One extra row tells us whether another page exists
    result = await db.execute(query.limit(limit + 1))
    jobs = list(result.scalars().all())

    next_cursor = None
    if len(jobs) > limit:
        jobs = jobs[:limit]
        next_cursor = encode_cursor(jobs[-1])

    return jobs, next_cursor


async def count_by_status(db: AsyncSession) -> dict[str, int]:
    """Number of jobs in each status, including zero counts."""
    result = await db.execute(
        select(NotificationJob.status, func.count(NotificationJob.id)).group_by(
            NotificationJob.status
        )
    )
    counts = {status.value: 0 for status in JobStatus}
    for status, count in result.all():
        counts[JobStatus(status).value] = count
    return counts


async def count_stale(db: AsyncSession, cutoff: datetime) -> int:
    """Processing jobs the next sweep would reclaim."""
    result = await db.execute(
        select(func.count(NotificationJob.id)).where(
            NotificationJob.status == JobStatus.PROCESSING,
            NotificationJob.updated_at < cutoff,
        )
    )
    return result.scalar_one()
