from notifier.models.base import Base
from notifier.models.notification_job import (
    ACTIVE_STATUSES,
    JobStatus,
    JobType,
    NotificationJob,
)
from notifier.models.sweep_run import SweepRun

__all__ = [
    "Base",
    "ACTIVE_STATUSES",
    "JobStatus",
    "JobType",
    "NotificationJob",
    "SweepRun",
]
