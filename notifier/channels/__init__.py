"""Delivery channels with a configuration-driven factory."""

from notifier.config import AppConfig
from notifier.core.exceptions import ConfigurationError
from notifier.session.manager import SessionManager

from .base import Channel, DeliveryRequest
from .session import SessionChannel
from .webhook import WebhookChannel

__all__ = [
    "Channel",
    "DeliveryRequest",
    "SessionChannel",
    "WebhookChannel",
    "build_channel",
]


def build_channel(config: AppConfig, session_manager: SessionManager | None = None) -> Channel:
    """
    Create the channel selected by NOTIFIER_CHANNEL.

    The session channel needs the app's SessionManager; the webhook channel
    ignores it.
    """
    settings = config.settings
    channel = settings.channel.strip().lower()

    if channel == "webhook":
        return WebhookChannel(
            base_url=settings.webhook_base_url,
            token=settings.webhook_token,
            timeout_seconds=settings.webhook_timeout_seconds,
        )

    if channel == "session":
        if session_manager is None:
            raise ConfigurationError("Session channel requires a session manager")
        return SessionChannel(
            manager=session_manager,
            pacing=config.pacing,
            contact_suffix=config.recipients.contact_suffix,
        )

    raise ConfigurationError(f"Unknown delivery channel: {settings.channel!r}")
