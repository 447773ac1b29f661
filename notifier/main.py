import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from notifier.api.router import api_router
from notifier.channels import build_channel
from notifier.config import get_config, get_settings
from notifier.core.database import AsyncSessionLocal
from notifier.core.exceptions import JobNotFoundError, JobStateError, StoreError
from notifier.core.logging import get_logger, setup_logging
from notifier.core.scheduler import start_scheduler, stop_scheduler
from notifier.services.worker import DeliveryWorker
from notifier.session import build_session_manager

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    setup_logging()
    config = get_config()

    session_manager = build_session_manager(config)
    channel = build_channel(config, session_manager)
    worker = DeliveryWorker(channel, AsyncSessionLocal, config.worker, config.recipients)

    app.state.session_manager = session_manager
    app.state.channel = channel
    app.state.worker = worker

    await start_scheduler()

    worker_task: asyncio.Task[None] | None = None
    if settings.worker_enabled:
        worker_task = asyncio.create_task(worker.run())
    else:
        logger.info("worker_disabled_by_config")

    yield

    # Shutdown
    worker.stop()
    try:
        if worker_task is not None:
            await worker_task
    except Exception as e:
        logger.bind(error=str(e)).exception("worker_task_failed")
    finally:
        await stop_scheduler()
        await channel.aclose()
        await session_manager.close()


app = FastAPI(
    title="Notifier",
    description="Attendance notification delivery pipeline",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

# Include API routes
app.include_router(api_router)


@app.exception_handler(JobNotFoundError)
async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(JobStateError)
async def job_state_handler(request: Request, exc: JobStateError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """The write did not happen; callers must not treat this as an empty result."""
    logger.bind(path=request.url.path, error=str(exc)).error("store_unavailable")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Job store unavailable", "error": "store_error"},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}
