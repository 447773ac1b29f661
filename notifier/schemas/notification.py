import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from notifier.models.notification_job import JobStatus, JobType


class NotificationCreate(BaseModel):
    """Request body for POST /api/notifications."""

    recipient: str = Field(default="", max_length=255)
    message: str = Field(min_length=1)
    type: JobType = JobType.ATTENDANCE
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_group: bool | None = None


class NotificationJobResponse(BaseModel):
    """Operator view of a notification job."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    recipient: str
    message: str
    is_group: bool
    type: JobType
    metadata: dict[str, Any] = Field(validation_alias="metadata_json")
    status: JobStatus
    error_message: str
    retry_count: int
    created_at: datetime
    updated_at: datetime


class EnqueueResponse(BaseModel):
    """queued is false when the recipient was empty and nothing was stored."""

    queued: bool
    job: NotificationJobResponse | None = None


class NotificationListResponse(BaseModel):
    items: list[NotificationJobResponse]
    next_cursor: str | None = None


class BulkActionResponse(BaseModel):
    count: int


class ProcessResponse(BaseModel):
    job_id: uuid.UUID
    outcome: str  # sent, failed, skipped
    error: str = ""


class RecipientUpdate(BaseModel):
    """Request body for correcting a job's destination."""

    recipient: str = Field(min_length=1, max_length=255)
    is_group: bool | None = None
