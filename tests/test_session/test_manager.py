"""Tests for the session manager lifecycle."""

import asyncio

import pytest

from notifier.core.exceptions import ConfigurationError, TransportError
from notifier.session import (
    Session,
    SessionAuthError,
    SessionConnector,
    SessionEvent,
    SessionEventType,
    SessionManager,
    SessionState,
)

pytestmark = pytest.mark.asyncio


class FakeSession(Session):
    def __init__(self) -> None:
        self.closed = False
        self.sent: list[tuple[str, str]] = []

    async def check_exists(self, address: str) -> bool:
        return True

    async def group_exists(self, group_id: str) -> bool:
        return True

    async def send_text(self, address: str, text: str) -> None:
        self.sent.append((address, text))

    async def close(self) -> None:
        self.closed = True


class FakeConnector(SessionConnector):
    """Connector whose login can be gated, failed, or preceded by a challenge."""

    def __init__(self) -> None:
        self.connect_calls = 0
        self.cleared = False
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None
        self.challenge: str | None = None
        self.emit = None
        self.sessions: list[FakeSession] = []

    async def connect(self, emit) -> Session:
        self.connect_calls += 1
        self.emit = emit
        if self.challenge is not None:
            await emit(SessionEvent(SessionEventType.CHALLENGE_PENDING, challenge=self.challenge))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        await emit(SessionEvent(SessionEventType.AUTHENTICATED))
        session = FakeSession()
        self.sessions.append(session)
        return session

    async def clear_credentials(self) -> None:
        self.cleared = True


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def manager(connector) -> SessionManager:
    return SessionManager(connector, connect_timeout_seconds=5, reconnect_delay_seconds=0)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestGetSession:
    """Tests for lazy, shared initialization."""

    async def test_first_call_connects(self, manager, connector):
        session = await manager.get_session()

        assert manager.state is SessionState.READY
        assert connector.connect_calls == 1
        assert await manager.get_session() is session
        assert connector.connect_calls == 1

    async def test_concurrent_callers_share_one_login(self, manager, connector):
        connector.gate = asyncio.Event()

        waiters = [asyncio.create_task(manager.get_session()) for _ in range(5)]
        await _settle()
        assert manager.state is SessionState.INITIALIZING
        connector.gate.set()
        sessions = await asyncio.gather(*waiters)

        assert connector.connect_calls == 1
        assert all(s is sessions[0] for s in sessions)

    async def test_no_connector_is_configuration_error(self):
        manager = SessionManager(None)

        with pytest.raises(ConfigurationError):
            await manager.get_session()
        assert manager.status()["configured"] is False

    async def test_auth_failure_is_terminal(self, manager, connector):
        connector.error = SessionAuthError("logged_out")

        with pytest.raises(ConfigurationError):
            await manager.get_session()
        assert manager.state is SessionState.AUTH_FAILED
        assert manager.last_reason == "logged_out"

        with pytest.raises(ConfigurationError):
            await manager.get_session()
        assert connector.connect_calls == 1

    async def test_transport_failure_allows_next_attempt(self, manager, connector):
        connector.error = TransportError("Gateway unreachable: connection refused")

        with pytest.raises(TransportError):
            await manager.get_session()
        assert manager.state is SessionState.UNINITIALIZED

        connector.error = None
        await manager.get_session()
        assert connector.connect_calls == 2
        assert manager.state is SessionState.READY

    async def test_login_timeout(self, connector):
        connector.gate = asyncio.Event()
        manager = SessionManager(connector, connect_timeout_seconds=0.01)

        with pytest.raises(TransportError) as exc_info:
            await manager.get_session()

        assert "timed out" in exc_info.value.detail
        assert manager.state is SessionState.UNINITIALIZED

    async def test_challenge_is_exposed_until_ready(self, manager, connector):
        connector.challenge = "ABCD-1234"
        connector.gate = asyncio.Event()

        waiter = asyncio.create_task(manager.get_session())
        await _settle()
        assert manager.status()["last_challenge"] == "ABCD-1234"

        connector.gate.set()
        await waiter
        assert manager.last_challenge is None


class TestLifecycleEvents:
    """Tests for disconnects and listener notifications."""

    async def test_transient_disconnect_reconnects(self, manager, connector):
        await manager.get_session()

        await connector.emit(SessionEvent(SessionEventType.DISCONNECTED, reason="stream closed"))
        assert manager.state is SessionState.REINITIALIZING

        session = await manager.get_session()
        assert connector.connect_calls == 2
        assert session is connector.sessions[-1]
        assert manager.state is SessionState.READY

    async def test_permanent_disconnect_is_auth_failed(self, manager, connector):
        await manager.get_session()

        await connector.emit(
            SessionEvent(SessionEventType.DISCONNECTED, reason="logged_out", permanent=True)
        )

        assert manager.state is SessionState.AUTH_FAILED
        with pytest.raises(ConfigurationError):
            await manager.get_session()
        assert connector.connect_calls == 1

    async def test_listeners_receive_events(self, manager, connector):
        seen: list[SessionEventType] = []

        async def listener(event: SessionEvent) -> None:
            seen.append(event.type)

        manager.subscribe(listener)
        await manager.get_session()

        assert seen == [SessionEventType.AUTHENTICATED, SessionEventType.READY]

    async def test_failing_listener_does_not_break_login(self, manager):
        async def listener(event: SessionEvent) -> None:
            raise RuntimeError("listener down")

        manager.subscribe(listener)

        await manager.get_session()
        assert manager.state is SessionState.READY


class TestReset:
    """Tests for reset / close."""

    async def test_reset_leaves_auth_failed(self, manager, connector):
        connector.error = SessionAuthError("bad_session")
        with pytest.raises(ConfigurationError):
            await manager.get_session()

        await manager.reset(clear_credentials=True)

        assert connector.cleared is True
        assert manager.state is SessionState.UNINITIALIZED
        assert manager.last_reason == ""

        connector.error = None
        await manager.get_session()
        assert manager.state is SessionState.READY

    async def test_close_closes_session(self, manager, connector):
        await manager.get_session()

        await manager.close()

        assert connector.sessions[0].closed is True
        assert manager.state is SessionState.UNINITIALIZED

    async def test_close_cancels_login_in_flight(self, manager, connector):
        connector.gate = asyncio.Event()
        waiter = asyncio.create_task(manager.get_session())
        await _settle()

        await manager.close()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert manager.state is SessionState.UNINITIALIZED
