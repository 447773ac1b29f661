"""
Logging setup.

Everything goes through loguru. Stdlib loggers from uvicorn, sqlalchemy,
httpx, apscheduler and websockets are routed into it.

With log_dir set, delivery lifecycle events are also written to a
daily-rotated JSON lines file so an operator can answer "was this parent
notified, and when" without the database.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from notifier.config import get_settings

# Events that describe what happened to a notification job
DELIVERY_EVENTS = frozenset(
    {
        "notification_enqueued",
        "job_claimed",
        "notification_sent",
        "notification_failed",
        "job_outcome_not_recorded",
        "stale_jobs_reclaimed",
        "job_retried",
        "failed_jobs_retried",
        "active_jobs_cancelled",
        "job_recipient_updated",
        "job_deleted",
    }
)

DELIVERY_LOG_NAME = "deliveries.jsonl"


class InterceptHandler(logging.Handler):
    """Route stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _health_log_filter(record: dict[str, Any]) -> bool:
    """Load balancer health probes are noise outside DEBUG."""
    message = record.get("message", "")
    if "/health" in message:
        return bool(record["level"].no <= 10)
    return True


def _delivery_filter(record: dict[str, Any]) -> bool:
    return record.get("message") in DELIVERY_EVENTS


def delivery_log_path(log_dir: str) -> Path:
    return Path(log_dir) / DELIVERY_LOG_NAME


def setup_logging() -> None:
    """Configure loguru sinks for the application."""
    settings = get_settings()

    logger.remove()

    if settings.debug:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level> | {extra}"
            ),
            backtrace=True,
            diagnose=True,
        )
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message} | {extra}",
            filter=_health_log_filter,
            backtrace=True,
            diagnose=False,
        )

    if settings.log_dir:
        logger.add(
            delivery_log_path(settings.log_dir),
            level="INFO",
            filter=_delivery_filter,
            serialize=True,
            rotation="00:00",
            retention="30 days",
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in [
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "sqlalchemy.engine",
        "httpx",
        "apscheduler",
        "websockets",
    ]:
        logging.getLogger(name).handlers = [InterceptHandler()]


def get_logger(name: str) -> Any:
    """Get a logger bound to a module name."""
    return logger.bind(name=name)
