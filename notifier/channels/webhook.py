"""
Webhook channel: hands messages to an HTTP relay that owns the chat login.

Wire contract: POST <base_url>/send with JSON {recipient, message, isGroup};
any 2xx response is a successful hand-off.
"""

import httpx

from notifier.channels.base import Channel, DeliveryRequest
from notifier.core.exceptions import ConfigurationError, TransportError
from notifier.core.logging import get_logger

logger = get_logger(__name__)

SEND_PATH = "/send"


class WebhookChannel(Channel):
    """Deliver through an intermediary webhook relay."""

    name = "webhook"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, request: DeliveryRequest) -> None:
        if not self.base_url:
            raise ConfigurationError("Webhook base URL is not configured")

        payload = {
            "recipient": request.recipient,
            "message": request.message,
            "isGroup": request.is_group,
        }

        try:
            resp = await self._get_client().post(
                f"{self.base_url}{SEND_PATH}",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.bind(recipient=request.recipient).warning("webhook_timeout")
            raise TransportError(
                f"Webhook timed out after {self.timeout_seconds:g}s: {e}"
            ) from e
        except httpx.HTTPError as e:
            logger.bind(recipient=request.recipient, error=str(e)).warning("webhook_transport_error")
            raise TransportError(f"Webhook request failed: {e}") from e

        if not resp.is_success:
            body = resp.text[:500]
            logger.bind(
                recipient=request.recipient,
                status=resp.status_code,
                body=body,
            ).warning("webhook_rejected")
            raise TransportError(f"HTTP {resp.status_code}: {body}")

        logger.bind(recipient=request.recipient, status=resp.status_code).debug("webhook_delivered")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
