"""Websocket client for a local messaging gateway.

The gateway process owns the actual chat-network login (device pairing,
credential storage). This module speaks its small JSON frame protocol:

    request:  {"type": "req", "id": ..., "method": ..., "params": {...}}
    response: {"type": "res", "id": ..., "ok": true, "payload": {...}}
              {"type": "res", "id": ..., "ok": false, "error": {"code": ..., "message": ...}}
    event:    {"type": "event", "event": ..., "payload": {...}}

Login is a single "connect" request that resolves once the gateway session
can send; pairing challenges arrive as events while it is pending.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlparse, urlunparse
from uuid import uuid4

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from notifier.core.exceptions import TransportError
from notifier.core.logging import get_logger
from notifier.session.base import (
    EventSink,
    Session,
    SessionAuthError,
    SessionConnector,
    SessionEvent,
    SessionEventType,
)

logger = get_logger(__name__)

PROTOCOL_VERSION = 1

# Disconnect reasons a reconnect cannot fix; an operator has to re-pair
PERMANENT_DISCONNECT_REASONS = frozenset({"bad_session", "logged_out", "connection_replaced"})

_AUTH_ERROR_CODES = frozenset({"auth_failed", "bad_session", "logged_out"})


class GatewayError(TransportError):
    """The gateway answered a request with an error."""


@dataclass(frozen=True)
class GatewayConfig:
    """Connection configuration for the messaging gateway."""

    url: str
    token: str | None = None
    client_id: str = "school-attendance-bot"
    request_timeout_seconds: float = 30.0


def _build_gateway_url(config: GatewayConfig) -> str:
    base_url = (config.url or "").strip()
    if not base_url:
        raise TransportError("Gateway URL is not configured")
    if not config.token:
        return base_url
    parsed = urlparse(base_url)
    return str(urlunparse(parsed._replace(query=urlencode({"token": config.token}))))


def _redacted_url_for_log(raw_url: str) -> str:
    parsed = urlparse(raw_url)
    return str(urlunparse(parsed._replace(query="", fragment="")))


def _request_frame(method: str, params: dict[str, Any] | None) -> tuple[str, str]:
    request_id = str(uuid4())
    frame = {"type": "req", "id": request_id, "method": method, "params": params or {}}
    return request_id, json.dumps(frame)


def _challenge_text(payload: dict[str, Any]) -> str | None:
    return payload.get("code") or payload.get("qr")


class GatewaySession(Session):
    """A logged-in gateway connection multiplexing requests over one websocket."""

    def __init__(
        self,
        ws: websockets.ClientConnection,
        emit: EventSink,
        request_timeout_seconds: float,
    ) -> None:
        self._ws = ws
        self._emit = emit
        self._timeout = request_timeout_seconds
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._closing = False
        self._disconnect_reason: str | None = None
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        reason = "connection_lost"
        try:
            async for raw in self._ws:
                data = json.loads(raw)
                kind = data.get("type")
                if kind == "res":
                    self._resolve(data)
                elif kind == "event" and data.get("event") == "connection.closed":
                    reason = (data.get("payload") or {}).get("reason", reason)
                    self._disconnect_reason = reason
        except ConnectionClosed as e:
            logger.bind(error=str(e)).debug("gateway_connection_closed")
        except (ValueError, WebSocketException) as e:
            logger.bind(error=str(e)).error("gateway_read_failed")
        finally:
            self._fail_pending(f"Gateway connection closed ({self._disconnect_reason or reason})")

        if not self._closing:
            final_reason = self._disconnect_reason or reason
            await self._emit(
                SessionEvent(
                    SessionEventType.DISCONNECTED,
                    reason=final_reason,
                    permanent=final_reason in PERMANENT_DISCONNECT_REASONS,
                )
            )

    def _resolve(self, data: dict[str, Any]) -> None:
        future = self._pending.pop(data.get("id", ""), None)
        if future is None or future.done():
            return
        if data.get("ok"):
            future.set_result(data.get("payload") or {})
        else:
            error = data.get("error") or {}
            future.set_exception(GatewayError(error.get("message", "Gateway error")))

    def _fail_pending(self, detail: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(detail))
        self._pending.clear()

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a request and wait for its response payload."""
        request_id, frame = _request_frame(method, params)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(frame)
            return await asyncio.wait_for(future, timeout=self._timeout)
        except TimeoutError as e:
            raise TransportError(f"Gateway {method} timed out after {self._timeout:g}s") from e
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise TransportError(f"Gateway {method} failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def check_exists(self, address: str) -> bool:
        payload = await self.call("contacts.check", {"jid": address})
        return bool(payload.get("exists"))

    async def group_exists(self, group_id: str) -> bool:
        payload = await self.call("groups.check", {"jid": group_id})
        return bool(payload.get("exists"))

    async def send_text(self, address: str, text: str) -> None:
        await self.call("messages.send", {"to": address, "text": text})

    async def close(self) -> None:
        self._closing = True
        await self._ws.close()
        await asyncio.gather(self._reader, return_exceptions=True)


class GatewaySessionConnector(SessionConnector):
    """Logs in through the messaging gateway."""

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    async def _open(self) -> websockets.ClientConnection:
        url = _build_gateway_url(self.config)
        logger.bind(gateway_url=_redacted_url_for_log(url)).debug("gateway_connecting")
        try:
            return await websockets.connect(url, ping_interval=20)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Cannot reach messaging gateway: {e}") from e

    async def connect(self, emit: EventSink) -> Session:
        ws = await self._open()
        try:
            await self._login(ws, emit)
        except BaseException:
            await ws.close()
            raise
        return GatewaySession(ws, emit, self.config.request_timeout_seconds)

    async def _login(self, ws: websockets.ClientConnection, emit: EventSink) -> None:
        request_id, frame = _request_frame(
            "connect",
            {"protocol": PROTOCOL_VERSION, "clientId": self.config.client_id},
        )
        try:
            await ws.send(frame)
            # Pairing may take a human several minutes; the manager bounds the wait
            async for raw in ws:
                data = json.loads(raw)
                if data.get("type") == "event":
                    await self._login_event(data, emit)
                    continue
                if data.get("type") == "res" and data.get("id") == request_id:
                    if data.get("ok"):
                        return
                    error = data.get("error") or {}
                    message = error.get("message", "Gateway login failed")
                    if error.get("code") in _AUTH_ERROR_CODES:
                        raise SessionAuthError(message)
                    raise GatewayError(message)
        except (ConnectionClosed, WebSocketException, OSError, ValueError) as e:
            raise TransportError(f"Gateway login failed: {e}") from e

        raise TransportError("Gateway closed the connection during login")

    async def _login_event(self, data: dict[str, Any], emit: EventSink) -> None:
        event = data.get("event")
        payload = data.get("payload") or {}
        if event == "pairing.challenge":
            await emit(
                SessionEvent(SessionEventType.CHALLENGE_PENDING, challenge=_challenge_text(payload))
            )
        elif event == "auth.success":
            await emit(SessionEvent(SessionEventType.AUTHENTICATED))
        else:
            logger.bind(event=event).debug("gateway_login_event_ignored")

    async def clear_credentials(self) -> None:
        """Ask the gateway to log out and delete its stored credentials."""
        ws = await self._open()
        try:
            request_id, frame = _request_frame("auth.logout", {"clientId": self.config.client_id})
            await ws.send(frame)
            async for raw in ws:
                data = json.loads(raw)
                if data.get("type") == "res" and data.get("id") == request_id:
                    if not data.get("ok"):
                        error = data.get("error") or {}
                        raise GatewayError(error.get("message", "Gateway logout failed"))
                    break
        except (ConnectionClosed, WebSocketException, OSError, ValueError) as e:
            raise TransportError(f"Gateway logout failed: {e}") from e
        finally:
            await ws.close()
        logger.info("gateway_credentials_cleared")
