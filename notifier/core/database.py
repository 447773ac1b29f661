import ssl
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from notifier.config import get_settings
from notifier.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def _prepare_url(url: str) -> tuple[str, dict[str, Any], dict[str, Any]]:
    """
    Split a database URL into (url, connect_args, engine_kwargs).

    asyncpg rejects libpq params like sslmode/channel_binding, so they are
    stripped and SSL is handled via connect_args for remote hosts. SQLite
    gets no pool sizing (aiosqlite uses a single connection per session).
    """
    parsed = urlparse(url)

    if parsed.scheme.startswith("sqlite"):
        return url, {}, {}

    params = parse_qs(parsed.query)
    for param in ["sslmode", "channel_binding", "options"]:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    pool_kwargs = {"pool_size": 5, "max_overflow": 10, "pool_recycle": 280}

    hostname = parsed.hostname or ""
    if hostname in ("localhost", "127.0.0.1", "db"):
        return clean_url, {}, pool_kwargs

    return clean_url, {"ssl": ssl.create_default_context()}, pool_kwargs


clean_url, connect_args, pool_kwargs = _prepare_url(settings.database_url)


engine = create_async_engine(
    clean_url,
    echo=settings.debug,
    pool_pre_ping=True,
    connect_args=connect_args,
    **pool_kwargs,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create tables directly (SQLite deployments without Alembic)."""
    from notifier.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
