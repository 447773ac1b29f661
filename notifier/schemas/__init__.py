from notifier.schemas.notification import (
    BulkActionResponse,
    EnqueueResponse,
    NotificationCreate,
    NotificationJobResponse,
    NotificationListResponse,
    ProcessResponse,
    RecipientUpdate,
)
from notifier.schemas.sweeper import SweepRunResponse, SweeperStatusResponse

__all__ = [
    "BulkActionResponse",
    "EnqueueResponse",
    "NotificationCreate",
    "NotificationJobResponse",
    "NotificationListResponse",
    "ProcessResponse",
    "RecipientUpdate",
    "SweepRunResponse",
    "SweeperStatusResponse",
]
