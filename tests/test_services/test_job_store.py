"""Tests for job store persistence and conditional transitions."""

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from notifier.core.datetime_utils import get_cutoff
from notifier.core.exceptions import StoreError
from notifier.models import Base, JobStatus, JobType, NotificationJob
from notifier.services import job_store

pytestmark = pytest.mark.asyncio


class TestClaim:
    """Tests for the pending -> processing compare-and-set."""

    async def test_claims_pending_job(self, db_session, job_factory):
        job = await job_factory(age=timedelta(minutes=1))

        claimed = await job_store.claim_job(db_session, job.id)

        assert claimed is not None
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.updated_at > claimed.created_at

    async def test_second_claim_rejected(self, db_session, job_factory):
        job = await job_factory()

        assert await job_store.claim_job(db_session, job.id) is not None
        assert await job_store.claim_job(db_session, job.id) is None

    @pytest.mark.parametrize("status", [JobStatus.PROCESSING, JobStatus.SENT, JobStatus.FAILED])
    async def test_non_pending_not_claimable(self, db_session, job_factory, status):
        job = await job_factory(status=status)

        assert await job_store.claim_job(db_session, job.id) is None
        assert (await job_store.get_job(db_session, job.id)).status == status

    async def test_unknown_id_not_claimable(self, db_session):
        assert await job_store.claim_job(db_session, uuid.uuid4()) is None


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """Sessions on a file database, each with its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class TestClaimRace:
    """Concurrent claims through separate connections."""

    async def test_exactly_one_worker_wins(self, file_session_maker):
        async with file_session_maker() as db:
            job = NotificationJob(recipient="081234567890", message="Hadir", metadata_json={})
            db.add(job)
            await db.commit()

        async def contend():
            async with file_session_maker() as db:
                return await job_store.claim_job(db, job.id)

        results = await asyncio.gather(*(contend() for _ in range(4)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert winners[0].status == JobStatus.PROCESSING

        async with file_session_maker() as db:
            assert (await job_store.get_job(db, job.id)).status == JobStatus.PROCESSING


class TestOutcomeWrites:
    """Tests for mark_sent / mark_failed."""

    async def test_mark_sent_clears_error(self, db_session, job_factory):
        job = await job_factory(status=JobStatus.PROCESSING, error_message="old")

        assert await job_store.mark_sent(db_session, job.id) is True

        stored = await job_store.get_job(db_session, job.id)
        assert stored.status == JobStatus.SENT
        assert stored.error_message == ""

    async def test_mark_sent_ignores_deleted_job(self, db_session, job_factory):
        job = await job_factory(status=JobStatus.PROCESSING)
        await job_store.delete_job(db_session, job.id)

        assert await job_store.mark_sent(db_session, job.id) is False
        assert await job_store.get_job(db_session, job.id) is None

    async def test_mark_failed_only_from_processing(self, db_session, job_factory):
        job = await job_factory(status=JobStatus.SENT)

        assert await job_store.mark_failed(db_session, job.id, "[transport] boom") is False
        assert (await job_store.get_job(db_session, job.id)).status == JobStatus.SENT

    async def test_write_failure_raises_store_error(self, db_session, job_factory):
        job = await job_factory()

        with patch.object(
            db_session,
            "execute",
            AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("db locked"))),
        ):
            with pytest.raises(StoreError):
                await job_store.claim_job(db_session, job.id)


class TestReclaimStale:
    """Tests for reclaim_stale."""

    async def test_only_old_processing_jobs_reclaimed(self, db_session, job_factory):
        stale = await job_factory(status=JobStatus.PROCESSING, age=timedelta(minutes=10))
        fresh = await job_factory(status=JobStatus.PROCESSING, age=timedelta(seconds=30))
        old_sent = await job_factory(status=JobStatus.SENT, age=timedelta(hours=1))

        count = await job_store.reclaim_stale(db_session, get_cutoff(seconds=300), "marker")

        assert count == 1
        assert (await job_store.get_job(db_session, stale.id)).status == JobStatus.PENDING
        assert (await job_store.get_job(db_session, fresh.id)).status == JobStatus.PROCESSING
        assert (await job_store.get_job(db_session, old_sent.id)).status == JobStatus.SENT


class TestBulk:
    """Tests for bulk retry / cancel."""

    async def test_retry_failed_counts_retry(self, db_session, job_factory):
        job = await job_factory(status=JobStatus.FAILED, retry_count=2, error_message="x")

        assert await job_store.retry_failed(db_session) == 1

        stored = await job_store.get_job(db_session, job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.retry_count == 3

    async def test_reset_to_pending_from_sent(self, db_session, job_factory):
        job = await job_factory(status=JobStatus.SENT, retry_count=4)

        assert await job_store.reset_to_pending(db_session, job.id) is True

        stored = await job_store.get_job(db_session, job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.retry_count == 0


class TestListing:
    """Tests for list_jobs pagination and count_by_status."""

    async def test_pages_newest_first(self, db_session, job_factory):
        jobs = [await job_factory(age=timedelta(minutes=i)) for i in range(5)]

        page1, cursor = await job_store.list_jobs(db_session, limit=2)
        page2, cursor2 = await job_store.list_jobs(db_session, cursor=cursor, limit=2)
        page3, cursor3 = await job_store.list_jobs(db_session, cursor=cursor2, limit=2)

        assert [j.id for j in page1] == [jobs[0].id, jobs[1].id]
        assert [j.id for j in page2] == [jobs[2].id, jobs[3].id]
        assert [j.id for j in page3] == [jobs[4].id]
        assert cursor3 is None

    async def test_filters_by_status(self, db_session, job_factory):
        await job_factory(status=JobStatus.SENT)
        failed = await job_factory(status=JobStatus.FAILED)

        jobs, cursor = await job_store.list_jobs(db_session, status=JobStatus.FAILED)

        assert [j.id for j in jobs] == [failed.id]
        assert cursor is None

    async def test_invalid_cursor(self, db_session):
        with pytest.raises(ValueError):
            await job_store.list_jobs(db_session, cursor="not-a-cursor")

    async def test_list_pending_ids_oldest_first(self, db_session, job_factory):
        newer = await job_factory(age=timedelta(minutes=1))
        older = await job_factory(age=timedelta(minutes=5))
        await job_factory(status=JobStatus.SENT, age=timedelta(minutes=9))

        assert await job_store.list_pending_ids(db_session, 10) == [older.id, newer.id]

    async def test_count_by_status_includes_zeros(self, db_session, job_factory):
        await job_factory(status=JobStatus.FAILED, job_type=JobType.RECAP)

        assert await job_store.count_by_status(db_session) == {
            "pending": 0,
            "processing": 0,
            "sent": 0,
            "failed": 1,
        }
