"""
Pytest configuration and fixtures for notifier tests.

Provides:
- Async test database with SQLite
- Test client for API testing
- Factory fixtures for creating notification jobs
- A recording channel standing in for the webhook relay / chat session
"""

import random
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from notifier.channels.base import Channel, DeliveryRequest
from notifier.config import (
    NotificationsConfig,
    PacingConfig,
    RecipientsConfig,
    Settings,
    SweeperConfig,
    WorkerConfig,
    get_settings,
)
from notifier.core.database import get_db
from notifier.core.datetime_utils import utc_now
from notifier.main import app
from notifier.models import Base, JobStatus, JobType, NotificationJob
from notifier.services.worker import DeliveryWorker

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    channel: str = "webhook"
    webhook_base_url: str = "http://relay.test"
    scheduler_enabled: bool = False
    worker_enabled: bool = False


class RecordingChannel(Channel):
    """Channel that records requests and optionally fails."""

    name = "recording"

    def __init__(
        self,
        contact_suffix: str = "",
        error: Exception | None = None,
        on_send: Callable[[DeliveryRequest], Awaitable[None]] | None = None,
    ) -> None:
        self.contact_suffix = contact_suffix
        self.error = error
        self.on_send = on_send
        self.requests: list[DeliveryRequest] = []

    async def send(self, request: DeliveryRequest) -> None:
        self.requests.append(request)
        if self.on_send is not None:
            await self.on_send(request)
        if self.error is not None:
            raise self.error


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine (what the worker uses)."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# Config Fixtures
# ============================================================================


@pytest.fixture
def recipients_config() -> RecipientsConfig:
    return RecipientsConfig({})


@pytest.fixture
def notifications_config() -> NotificationsConfig:
    return NotificationsConfig({})


@pytest.fixture
def worker_config() -> WorkerConfig:
    # One job at a time: the in-memory database has a single shared connection
    return WorkerConfig({"poll_interval_seconds": 0.01, "batch_size": 10, "concurrency": 1})


@pytest.fixture
def sweeper_config() -> SweeperConfig:
    return SweeperConfig({"interval_seconds": 300, "stale_after_seconds": 300})


@pytest.fixture
def no_pacing() -> PacingConfig:
    return PacingConfig({"min_delay_seconds": 0, "max_delay_seconds": 0})


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(42)


# ============================================================================
# Channel / Worker Fixtures
# ============================================================================


@pytest.fixture
def make_channel():
    """Factory for RecordingChannel instances."""
    return RecordingChannel


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def make_worker(session_maker, worker_config, recipients_config):
    """Factory for a DeliveryWorker bound to the test database."""

    def _make(channel: Channel) -> DeliveryWorker:
        return DeliveryWorker(channel, session_maker, worker_config, recipients_config)

    return _make


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, make_worker, recording_channel
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database override and an in-memory worker."""

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.state.worker = make_worker(recording_channel)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.worker = None
    app.state.session_manager = None


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def job_factory(db_session: AsyncSession):
    """Factory for creating notification jobs in any status."""

    async def _create_job(
        recipient: str = "081234567890",
        message: str = "Ananda Budi telah hadir di sekolah pukul 07:05.",
        status: JobStatus = JobStatus.PENDING,
        is_group: bool = False,
        job_type: JobType = JobType.ATTENDANCE,
        metadata: dict[str, Any] | None = None,
        error_message: str = "",
        retry_count: int = 0,
        age: timedelta = timedelta(0),
        updated_age: timedelta | None = None,
    ) -> NotificationJob:
        now = utc_now()
        job = NotificationJob(
            recipient=recipient,
            message=message,
            is_group=is_group,
            type=job_type,
            metadata_json=metadata or {"studentName": "Budi"},
            status=status,
            error_message=error_message,
            retry_count=retry_count,
            created_at=now - age,
            updated_at=now - (updated_age if updated_age is not None else age),
        )
        db_session.add(job)
        await db_session.commit()
        return job

    return _create_job
