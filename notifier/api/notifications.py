"""Producer and operator endpoints for notification jobs."""

import uuid

from fastapi import APIRouter, HTTPException, Query, Response, status

from notifier.dependencies import DBSession, Worker
from notifier.models.notification_job import JobStatus
from notifier.schemas.notification import (
    BulkActionResponse,
    EnqueueResponse,
    NotificationCreate,
    NotificationJobResponse,
    NotificationListResponse,
    ProcessResponse,
    RecipientUpdate,
)
from notifier.services import admin
from notifier.services.producer import enqueue

router = APIRouter()


@router.post(
    "/notifications",
    response_model=EnqueueResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_notification(
    body: NotificationCreate,
    db: DBSession,
    response: Response,
) -> EnqueueResponse:
    """
    Queue a notification.

    An empty recipient is accepted and skipped: the response is 200 with
    `queued: false`. A store failure returns 503 so the caller can react.
    """
    try:
        job = await enqueue(
            db,
            body.recipient,
            body.message,
            body.type,
            body.metadata,
            is_group=body.is_group,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    if job is None:
        response.status_code = status.HTTP_200_OK
        return EnqueueResponse(queued=False)

    return EnqueueResponse(queued=True, job=NotificationJobResponse.model_validate(job))


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    db: DBSession,
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=admin.DEFAULT_PAGE_SIZE, ge=1, le=admin.MAX_PAGE_SIZE),
) -> NotificationListResponse:
    """List jobs newest first. Pass `next_cursor` back as `cursor` for the next page."""
    try:
        jobs, next_cursor = await admin.list_jobs(db, status_filter, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return NotificationListResponse(
        items=[NotificationJobResponse.model_validate(j) for j in jobs],
        next_cursor=next_cursor,
    )


@router.get("/notifications/stats")
async def notification_stats(db: DBSession) -> dict[str, int]:
    """Job counts per status."""
    return await admin.counts(db)


@router.post("/notifications/retry-failed", response_model=BulkActionResponse)
async def retry_failed_notifications(db: DBSession) -> BulkActionResponse:
    """Move every failed job back to pending."""
    return BulkActionResponse(count=await admin.retry_all_failed(db))


@router.post("/notifications/cancel-active", response_model=BulkActionResponse)
async def cancel_active_notifications(db: DBSession) -> BulkActionResponse:
    """Delete every pending and processing job."""
    return BulkActionResponse(count=await admin.cancel_all_pending_and_processing(db))


@router.get("/notifications/{job_id}", response_model=NotificationJobResponse)
async def get_notification(job_id: uuid.UUID, db: DBSession) -> NotificationJobResponse:
    return NotificationJobResponse.model_validate(await admin.get_job(db, job_id))


@router.post("/notifications/{job_id}/retry", response_model=NotificationJobResponse)
async def retry_notification(job_id: uuid.UUID, db: DBSession) -> NotificationJobResponse:
    """Requeue one job from any status, clearing its error and retry count."""
    return NotificationJobResponse.model_validate(await admin.retry_job(db, job_id))


@router.patch("/notifications/{job_id}", response_model=NotificationJobResponse)
async def update_notification_recipient(
    job_id: uuid.UUID, body: RecipientUpdate, db: DBSession
) -> NotificationJobResponse:
    """
    Correct the recipient of a pending or failed job.

    Returns 409 for a job that is processing or already sent. A failed job
    stays failed until it is retried.
    """
    try:
        job = await admin.update_recipient(db, job_id, body.recipient, body.is_group)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return NotificationJobResponse.model_validate(job)


@router.delete("/notifications/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(job_id: uuid.UUID, db: DBSession) -> None:
    await admin.delete_job(db, job_id)


@router.post("/notifications/{job_id}/process", response_model=ProcessResponse)
async def process_notification(job_id: uuid.UUID, db: DBSession, worker: Worker) -> ProcessResponse:
    """
    Deliver one job now instead of waiting for the poll loop.

    Only pending jobs are processed; anything else reports `skipped`.
    """
    # Distinguish unknown ids from jobs that are simply not pending
    await admin.get_job(db, job_id)
    result = await worker.process_job(job_id)
    return ProcessResponse(job_id=result.job_id, outcome=result.outcome, error=result.error)
