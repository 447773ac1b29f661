"""
Producer API for upstream business flows (attendance scans, monthly recaps).

Enqueueing only writes a pending job; delivery happens later in the worker,
so a slow or broken chat link never blocks the triggering event.
"""

import random
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config import NotificationsConfig, get_config
from notifier.core.logging import get_logger
from notifier.models.notification_job import JobType, NotificationJob
from notifier.services import job_store
from notifier.services.recipients import looks_like_group

logger = get_logger(__name__)


def append_footer(
    message: str,
    config: NotificationsConfig | None = None,
    rng: random.Random | None = None,
) -> str:
    """Append one footer picked uniformly at random from the configured set."""
    config = config or get_config().notifications
    footer = (rng or random).choice(config.footers)
    return f"{message}\n\n{config.separator}\n{footer}"


async def enqueue(
    db: AsyncSession,
    recipient: str,
    raw_message: str,
    job_type: JobType | str = JobType.ATTENDANCE,
    metadata: dict[str, Any] | None = None,
    *,
    is_group: bool | None = None,
) -> NotificationJob | None:
    """Queue a notification for delivery.

    Args:
        db: Database session
        recipient: Phone number or group identifier. Empty means "no destination
            configured" and is skipped without writing anything.
        raw_message: Message body; the footer is appended here.
        job_type: "attendance" or "recap"
        metadata: Display-only data for the operator UI
        is_group: Force group/contact addressing; guessed from the recipient if None

    Returns:
        The created job, or None when the recipient is empty.

    Raises:
        ValueError: If the message body is empty
        StoreError: If the job could not be persisted. Callers must not ignore
            this: the business event has already committed.
    """
    metadata = metadata or {}
    recipient = (recipient or "").strip()

    if not recipient:
        logger.bind(**{k: str(v) for k, v in metadata.items()}).warning(
            "notification_skipped_no_recipient"
        )
        return None

    if not raw_message or not raw_message.strip():
        raise ValueError("Notification message cannot be empty.")

    if is_group is None:
        is_group = looks_like_group(recipient)

    job = await job_store.insert_job(
        db,
        recipient=recipient,
        message=append_footer(raw_message),
        is_group=is_group,
        job_type=JobType(job_type),
        metadata=metadata,
    )

    logger.bind(
        job_id=str(job.id),
        recipient=recipient,
        type=job.type.value,
        is_group=is_group,
    ).info("notification_enqueued")

    return job
