"""Session channel: sends directly through the shared chat session."""

import asyncio
import random
from collections.abc import Awaitable, Callable

from notifier.channels.base import Channel, DeliveryRequest
from notifier.config import PacingConfig
from notifier.core.exceptions import RecipientResolutionError, TransportError
from notifier.core.logging import get_logger
from notifier.session.manager import SessionManager

logger = get_logger(__name__)


class SessionChannel(Channel):
    """Deliver through the long-lived session owned by a SessionManager."""

    name = "session"

    def __init__(
        self,
        manager: SessionManager,
        pacing: PacingConfig,
        contact_suffix: str = "@s.whatsapp.net",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.manager = manager
        self.pacing = pacing
        self.contact_suffix = contact_suffix
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _pacing_delay(self) -> float:
        low = max(0.0, float(self.pacing.min_delay_seconds))
        high = max(low, float(self.pacing.max_delay_seconds))
        return self._rng.uniform(low, high)

    async def send(self, request: DeliveryRequest) -> None:
        session = await self.manager.get_session()

        if request.is_group:
            exists = await session.group_exists(request.recipient)
        else:
            exists = await session.check_exists(request.recipient)
        if not exists:
            kind = "group" if request.is_group else "contact"
            raise RecipientResolutionError(
                f"Destination {request.recipient} is not a registered {kind}"
            )

        delay = self._pacing_delay()
        logger.bind(recipient=request.recipient, delay=round(delay, 2)).debug("session_send_paced")
        await self._sleep(delay)

        try:
            await session.send_text(request.recipient, request.message)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Session send failed: {e}") from e

        logger.bind(recipient=request.recipient).debug("session_delivered")
