from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config import AppConfig, get_config
from notifier.core.database import get_db
from notifier.services.worker import DeliveryWorker
from notifier.session.manager import SessionManager

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
Config = Annotated[AppConfig, Depends(get_config)]


def get_worker(request: Request) -> DeliveryWorker:
    """The delivery worker owned by the running app."""
    worker: DeliveryWorker | None = getattr(request.app.state, "worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Delivery worker is not initialised",
        )
    return worker


def get_session_manager(request: Request) -> SessionManager:
    manager: SessionManager | None = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session manager is not initialised",
        )
    return manager


Worker = Annotated[DeliveryWorker, Depends(get_worker)]
Sessions = Annotated[SessionManager, Depends(get_session_manager)]
