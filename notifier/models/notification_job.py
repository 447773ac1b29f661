"""Queued notification delivery jobs."""

import enum
import uuid
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notifier.models.base import Base, TimestampMixin


class JobStatus(str, enum.Enum):
    """Delivery state of a notification job."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class JobType(str, enum.Enum):
    """Informational category tag."""

    ATTENDANCE = "attendance"
    RECAP = "recap"


# pending/processing are the states bulk cancel removes
ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class NotificationJob(Base, TimestampMixin):
    """One queued delivery attempt to a chat recipient.

    Created pending by the producer, mutated only by the delivery worker,
    the sweeper and operator actions. `updated_at` doubles as the staleness
    marker while the job is processing.
    """

    __tablename__ = "notification_jobs"
    __table_args__ = (
        CheckConstraint("length(recipient) > 0", name="ck_notification_jobs_recipient"),
        CheckConstraint("length(message) > 0", name="ck_notification_jobs_message"),
        CheckConstraint("retry_count >= 0", name="ck_notification_jobs_retry_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    is_group: Mapped[bool] = mapped_column(Boolean, default=False)
    type: Mapped[JobType] = mapped_column(
        Enum(
            JobType,
            values_callable=lambda e: [x.value for x in e],
            name="notificationtype",
        ),
        default=JobType.ATTENDANCE,
    )
    # Display-only data for the operator UI (student name, class, ...)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="notificationstatus",
        ),
        default=JobStatus.PENDING,
        index=True,
    )

    # Error tracking
    error_message: Mapped[str] = mapped_column(Text, default="")
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<NotificationJob {self.id} {self.recipient} status={self.status.value}>"
