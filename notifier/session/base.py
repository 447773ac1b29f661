"""Session lifecycle types and the connector interface."""

import enum
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from notifier.core.datetime_utils import utc_now


class SessionState(str, enum.Enum):
    """Lifecycle state of the long-lived chat session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    REINITIALIZING = "reinitializing"
    AUTH_FAILED = "auth_failed"


class SessionEventType(str, enum.Enum):
    """Lifecycle signals surfaced to operators and listeners."""

    CHALLENGE_PENDING = "challenge_pending"  # pairing code / QR waiting for a human
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"
    AUTH_FAILED = "auth_failed"


@dataclass
class SessionEvent:
    type: SessionEventType
    reason: str = ""
    # Pairing code or QR payload for CHALLENGE_PENDING
    challenge: str | None = None
    # Disconnects that cannot be fixed by reconnecting (logged out, bad session)
    permanent: bool = False
    at: datetime = field(default_factory=utc_now)


EventSink = Callable[[SessionEvent], Awaitable[None]]


class SessionAuthError(Exception):
    """The network rejected the stored credentials during login."""


class Session(ABC):
    """An authenticated connection able to look up destinations and send text."""

    @abstractmethod
    async def check_exists(self, address: str) -> bool:
        """Whether an individual contact address is registered on the network."""
        pass

    @abstractmethod
    async def group_exists(self, group_id: str) -> bool:
        """Whether a group identifier is valid and joined by this session."""
        pass

    @abstractmethod
    async def send_text(self, address: str, text: str) -> None:
        """Send a text message. Raises TransportError on connectivity failure."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class SessionConnector(ABC):
    """Network-specific login logic used by the SessionManager.

    `connect` performs the full login, reporting CHALLENGE_PENDING and
    AUTHENTICATED through `emit` as they happen, and returns once the session
    can send. Later connection loss is reported as DISCONNECTED. The manager
    emits READY itself.
    """

    @abstractmethod
    async def connect(self, emit: EventSink) -> Session:
        """
        Log in and return a ready session.

        Raises:
            SessionAuthError: Stored credentials were rejected
            TransportError: The gateway could not be reached
        """
        pass

    async def clear_credentials(self) -> None:
        """Drop persisted credentials so the next login starts a fresh pairing."""
        return None
