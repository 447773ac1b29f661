"""
Owner of the single long-lived chat session shared by all session-channel sends.

State machine:
    uninitialized -> initializing -> ready
    ready -> reinitializing -> ready        (connection lost, reconnect)
    initializing/reinitializing -> auth_failed   (terminal until reset())

Concurrent first callers of get_session() all await the same initialization
task; at most one login is ever in flight.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from notifier.core.datetime_utils import utc_now
from notifier.core.exceptions import ConfigurationError, TransportError
from notifier.core.logging import get_logger
from notifier.session.base import (
    Session,
    SessionAuthError,
    SessionConnector,
    SessionEvent,
    SessionEventType,
    SessionState,
)

logger = get_logger(__name__)

Listener = Callable[[SessionEvent], Awaitable[None]]


class SessionManager:
    """Lazily connects, shares and re-establishes the chat session."""

    def __init__(
        self,
        connector: SessionConnector | None,
        *,
        connect_timeout_seconds: float = 120.0,
        reconnect_delay_seconds: float = 5.0,
    ) -> None:
        self._connector = connector
        self._connect_timeout = connect_timeout_seconds
        self._reconnect_delay = reconnect_delay_seconds

        self._state = SessionState.UNINITIALIZED
        self._session: Session | None = None
        self._init_task: asyncio.Task[Session] | None = None
        self._listeners: list[Listener] = []

        self.last_reason: str = ""
        self.last_challenge: str | None = None
        self.state_changed_at: datetime = utc_now()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_configured(self) -> bool:
        return self._connector is not None

    def subscribe(self, listener: Listener) -> None:
        """Register an async callback for lifecycle events."""
        self._listeners.append(listener)

    async def get_session(self) -> Session:
        """Return the ready session, joining or starting one initialization.

        Raises:
            ConfigurationError: No connector configured, or credentials rejected
            TransportError: The login attempt failed for connectivity reasons
        """
        if self._state is SessionState.READY and self._session is not None:
            return self._session

        if self._connector is None:
            raise ConfigurationError("Session gateway is not configured")

        if self._state is SessionState.AUTH_FAILED:
            raise ConfigurationError(
                f"Session authentication failed ({self.last_reason}); "
                "clear credentials and reset the session"
            )

        if self._init_task is None or self._init_task.done():
            self._start_initialization()

        assert self._init_task is not None
        # Shield so one cancelled caller does not abort the shared login
        return await asyncio.shield(self._init_task)

    def _start_initialization(self, delay: float = 0.0) -> None:
        reconnect = self._state in (SessionState.READY, SessionState.REINITIALIZING)
        self._set_state(SessionState.REINITIALIZING if reconnect else SessionState.INITIALIZING)
        self._init_task = asyncio.create_task(self._initialize(delay))
        # Consume the exception if nobody awaits a background reconnect
        self._init_task.add_done_callback(_swallow_task_exception)

    async def _initialize(self, delay: float) -> Session:
        assert self._connector is not None
        if delay:
            await asyncio.sleep(delay)

        logger.bind(state=self._state.value).info("session_initializing")
        try:
            session = await asyncio.wait_for(
                self._connector.connect(self._handle_event),
                timeout=self._connect_timeout,
            )
        except SessionAuthError as e:
            await self._fail_auth(str(e))
            raise ConfigurationError(f"Session authentication failed: {e}") from e
        except TimeoutError as e:
            self._reset_after_failure(f"login timed out after {self._connect_timeout:g}s")
            raise TransportError(f"Session login timed out after {self._connect_timeout:g}s") from e
        except TransportError as e:
            self._reset_after_failure(e.detail)
            raise

        self._session = session
        self.last_challenge = None
        self._set_state(SessionState.READY)
        logger.info("session_ready")
        await self._notify(SessionEvent(SessionEventType.READY))
        return session

    def _reset_after_failure(self, reason: str) -> None:
        self.last_reason = reason
        self._session = None
        self._set_state(SessionState.UNINITIALIZED)
        logger.bind(reason=reason).warning("session_initialization_failed")

    async def _fail_auth(self, reason: str) -> None:
        self.last_reason = reason
        self._session = None
        self._set_state(SessionState.AUTH_FAILED)
        logger.bind(reason=reason).error("session_auth_failed")
        await self._notify(SessionEvent(SessionEventType.AUTH_FAILED, reason=reason))

    async def _handle_event(self, event: SessionEvent) -> None:
        """Sink passed to the connector."""
        if event.type is SessionEventType.CHALLENGE_PENDING:
            self.last_challenge = event.challenge
            # Operator must scan the QR / enter the pairing code out of band
            logger.bind(challenge=event.challenge).warning("session_challenge_pending")
        elif event.type is SessionEventType.AUTHENTICATED:
            logger.info("session_authenticated")
        elif event.type is SessionEventType.AUTH_FAILED:
            await self._fail_auth(event.reason)
            return
        elif event.type is SessionEventType.DISCONNECTED:
            await self._on_disconnect(event)
            return

        await self._notify(event)

    async def _on_disconnect(self, event: SessionEvent) -> None:
        self._session = None
        self.last_reason = event.reason
        logger.bind(reason=event.reason, permanent=event.permanent).warning("session_disconnected")
        await self._notify(event)

        if event.permanent:
            await self._fail_auth(event.reason)
            return

        if self._init_task is None or self._init_task.done():
            self._set_state(SessionState.REINITIALIZING)
            self._start_initialization(delay=self._reconnect_delay)

    async def _notify(self, event: SessionEvent) -> None:
        for listener in self._listeners:
            try:
                await listener(event)
            except Exception as e:
                logger.bind(event=event.type.value, error=str(e)).error("session_listener_failed")

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.bind(previous=self._state.value, state=state.value).debug("session_state_changed")
        self._state = state
        self.state_changed_at = utc_now()

    async def reset(self, clear_credentials: bool = False) -> None:
        """Drop the current session and leave auth_failed so a new login can start."""
        await self.close()
        if clear_credentials and self._connector is not None:
            await self._connector.clear_credentials()
        self.last_reason = ""
        logger.bind(clear_credentials=clear_credentials).info("session_reset")

    async def close(self) -> None:
        """Cancel any login in flight and close the session."""
        task, self._init_task = self._init_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.bind(error=str(e)).debug("session_login_aborted")

        session, self._session = self._session, None
        if session is not None:
            await session.close()

        self.last_challenge = None
        self._set_state(SessionState.UNINITIALIZED)

    def status(self) -> dict[str, Any]:
        """Snapshot for the operator surface."""
        return {
            "configured": self.is_configured,
            "state": self._state.value,
            "last_reason": self.last_reason or None,
            "last_challenge": self.last_challenge,
            "state_changed_at": self.state_changed_at,
        }


def _swallow_task_exception(task: asyncio.Task[Any]) -> None:
    if not task.cancelled():
        task.exception()
