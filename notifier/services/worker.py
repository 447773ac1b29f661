"""
Delivery worker: claims pending jobs and dispatches them through a channel.

The claim is a compare-and-set on the job row, so any number of workers (and
the on-demand process endpoint) can run against the same store without
delivering a job twice. Delivery failures become job state; they are never
retried automatically.
"""

import asyncio
import contextlib
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.channels.base import Channel, DeliveryRequest
from notifier.config import RecipientsConfig, WorkerConfig, get_config
from notifier.core.exceptions import DeliveryError, StoreError, TransportError
from notifier.core.logging import get_logger
from notifier.services import job_store
from notifier.services.recipients import resolve_address

logger = get_logger(__name__)

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


@dataclass
class ProcessResult:
    """Result of one process attempt for a single job."""

    job_id: uuid.UUID
    outcome: str
    error: str = ""


class DeliveryWorker:
    """Poll loop plus on-demand processing of notification jobs."""

    def __init__(
        self,
        channel: Channel,
        session_factory: async_sessionmaker[AsyncSession],
        config: WorkerConfig | None = None,
        recipients: RecipientsConfig | None = None,
    ) -> None:
        self.channel = channel
        self.session_factory = session_factory
        self.config = config or get_config().worker
        self.recipients = recipients or get_config().recipients
        self._semaphore = asyncio.Semaphore(max(1, self.config.concurrency))
        self._stop = asyncio.Event()

    async def process_job(self, job_id: uuid.UUID) -> ProcessResult:
        """
        Claim and deliver one job.

        Returns a skipped result when the job is not pending (already claimed,
        sent, failed or deleted).

        Raises:
            StoreError: The claim or outcome write failed. A job left in
                processing this way is reclaimed later by the sweeper.
        """
        async with self.session_factory() as db:
            job = await job_store.claim_job(db, job_id)
            if job is None:
                logger.bind(job_id=str(job_id)).debug("job_claim_skipped")
                return ProcessResult(job_id=job_id, outcome=OUTCOME_SKIPPED)

            log = logger.bind(job_id=str(job.id), recipient=job.recipient, channel=self.channel.name)
            log.info("job_claimed")

            error = await self._deliver(job.recipient, job.message, job.is_group)

            if error is None:
                recorded = await job_store.mark_sent(db, job.id)
                outcome = OUTCOME_SENT
                log.info("notification_sent")
            else:
                recorded = await job_store.mark_failed(db, job.id, error)
                outcome = OUTCOME_FAILED
                log.bind(error=error).warning("notification_failed")

            if not recorded:
                # Deleted or reclaimed while the send was in flight
                log.bind(outcome=outcome).warning("job_outcome_not_recorded")

            return ProcessResult(job_id=job.id, outcome=outcome, error=error or "")

    async def _deliver(self, recipient: str, message: str, is_group: bool) -> str | None:
        """Send through the channel; return the error text, or None on success."""
        try:
            address = resolve_address(
                recipient, is_group, self.channel.contact_suffix, self.recipients
            )
            await self.channel.send(
                DeliveryRequest(recipient=address, message=message, is_group=is_group)
            )
        except DeliveryError as e:
            return e.describe()
        except Exception as e:
            logger.bind(recipient=recipient, error=repr(e)).exception("channel_unexpected_error")
            return TransportError(f"Unexpected channel error: {e}").describe()
        return None

    async def _process_bounded(self, job_id: uuid.UUID) -> ProcessResult:
        async with self._semaphore:
            return await self.process_job(job_id)

    async def run_once(self) -> list[ProcessResult]:
        """Process one batch of the oldest pending jobs."""
        async with self.session_factory() as db:
            job_ids = await job_store.list_pending_ids(db, self.config.batch_size)

        if not job_ids:
            return []

        outcomes = await asyncio.gather(
            *(self._process_bounded(job_id) for job_id in job_ids),
            return_exceptions=True,
        )

        results: list[ProcessResult] = []
        for job_id, outcome in zip(job_ids, outcomes, strict=True):
            if isinstance(outcome, StoreError):
                logger.bind(job_id=str(job_id), error=str(outcome)).error("job_processing_failed")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        logger.bind(
            picked=len(job_ids),
            sent=sum(1 for r in results if r.outcome == OUTCOME_SENT),
            failed=sum(1 for r in results if r.outcome == OUTCOME_FAILED),
        ).info("worker_batch_completed")
        return results

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._stop.clear()
        logger.bind(
            channel=self.channel.name,
            poll_interval=self.config.poll_interval_seconds,
            concurrency=self.config.concurrency,
        ).info("worker_started")

        while not self._stop.is_set():
            try:
                results = await self.run_once()
            except Exception as e:
                # Keep polling; the next pass retries against the store
                logger.bind(error=str(e)).exception("worker_poll_failed")
                results = []

            if len(results) < self.config.batch_size:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        self._stop.wait(), timeout=self.config.poll_interval_seconds
                    )

        logger.info("worker_stopped")

    def stop(self) -> None:
        self._stop.set()
