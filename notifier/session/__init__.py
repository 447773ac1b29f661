"""Long-lived chat session management."""

from notifier.config import AppConfig

from .base import (
    Session,
    SessionAuthError,
    SessionConnector,
    SessionEvent,
    SessionEventType,
    SessionState,
)
from .gateway import GatewayConfig, GatewaySession, GatewaySessionConnector
from .manager import SessionManager

__all__ = [
    "GatewayConfig",
    "GatewaySession",
    "GatewaySessionConnector",
    "Session",
    "SessionAuthError",
    "SessionConnector",
    "SessionEvent",
    "SessionEventType",
    "SessionManager",
    "SessionState",
    "build_session_manager",
]


def build_session_manager(config: AppConfig) -> SessionManager:
    """
    Create the session manager for the configured gateway.

    Without a gateway URL the manager has no connector and every
    get_session() raises ConfigurationError.
    """
    session_config = config.session
    connector = None
    if session_config.gateway_url:
        connector = GatewaySessionConnector(
            GatewayConfig(
                url=session_config.gateway_url,
                token=session_config.gateway_token or None,
                client_id=session_config.client_id,
                request_timeout_seconds=session_config.request_timeout_seconds,
            )
        )
    return SessionManager(
        connector,
        connect_timeout_seconds=session_config.connect_timeout_seconds,
        reconnect_delay_seconds=session_config.reconnect_delay_seconds,
    )
