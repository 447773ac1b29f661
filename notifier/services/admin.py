"""
Operator control operations over the job queue.

Single-job operations raise JobNotFoundError for unknown ids. Bulk operations
raise StoreError on failure rather than reporting a zero count.
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.core.exceptions import JobNotFoundError, JobStateError
from notifier.core.logging import get_logger
from notifier.models.notification_job import JobStatus, NotificationJob
from notifier.services import job_store
from notifier.services.recipients import looks_like_group

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob:
    job = await job_store.get_job(db, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def retry_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob:
    """
    Put a job back in the queue regardless of its current status.

    Clears the error and resets retry_count, so this is also how an operator
    requeues a job after correcting its recipient.
    """
    if not await job_store.reset_to_pending(db, job_id):
        raise JobNotFoundError(job_id)
    logger.bind(job_id=str(job_id)).info("job_retried")
    return await get_job(db, job_id)


async def update_recipient(
    db: AsyncSession,
    job_id: uuid.UUID,
    recipient: str,
    is_group: bool | None = None,
) -> NotificationJob:
    """
    Correct the destination of a pending or failed job.

    The job keeps its status; follow up with retry_job for a failed one.

    Raises:
        ValueError: Empty recipient
        JobNotFoundError: Unknown id
        JobStateError: The job is processing or already sent
    """
    recipient = recipient.strip()
    if not recipient:
        raise ValueError("Recipient cannot be empty.")
    if is_group is None:
        is_group = looks_like_group(recipient)

    if not await job_store.update_recipient(db, job_id, recipient, is_group):
        job = await get_job(db, job_id)
        raise JobStateError(job_id, job.status.value, "edit the recipient of")

    logger.bind(job_id=str(job_id), recipient=recipient).info("job_recipient_updated")
    return await get_job(db, job_id)


async def delete_job(db: AsyncSession, job_id: uuid.UUID) -> None:
    """Delete a job. A send already in flight is not recalled."""
    if not await job_store.delete_job(db, job_id):
        raise JobNotFoundError(job_id)
    logger.bind(job_id=str(job_id)).info("job_deleted")


async def retry_all_failed(db: AsyncSession) -> int:
    count = await job_store.retry_failed(db)
    logger.bind(count=count).info("failed_jobs_retried")
    return count


async def cancel_all_pending_and_processing(db: AsyncSession) -> int:
    """Delete every pending and processing job; sent and failed jobs are kept."""
    count = await job_store.delete_active(db)
    logger.bind(count=count).info("active_jobs_cancelled")
    return count


async def list_jobs(
    db: AsyncSession,
    status: JobStatus | None = None,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[NotificationJob], str | None]:
    """Newest first. Raises ValueError for a malformed cursor."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    return await job_store.list_jobs(db, status=status, cursor=cursor, limit=limit)


async def counts(db: AsyncSession) -> dict[str, int]:
    return await job_store.count_by_status(db)
