"""Operator endpoints for the chat session."""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from notifier.dependencies import Sessions

router = APIRouter()


class SessionStatusResponse(BaseModel):
    """Current session state for the operator page."""

    configured: bool
    state: str
    last_reason: str | None
    last_challenge: str | None  # pairing code / QR payload awaiting a scan
    state_changed_at: datetime


@router.get("/session/status", response_model=SessionStatusResponse)
async def session_status(manager: Sessions) -> SessionStatusResponse:
    return SessionStatusResponse(**manager.status())


@router.post("/session/reset", response_model=SessionStatusResponse)
async def reset_session(
    manager: Sessions,
    clear_credentials: bool = Query(default=False),
) -> SessionStatusResponse:
    """
    Drop the current session so the next send logs in again.

    Use `clear_credentials=true` after a logout or bad-session failure to
    force a fresh pairing.
    """
    await manager.reset(clear_credentials=clear_credentials)
    return SessionStatusResponse(**manager.status())
