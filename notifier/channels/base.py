"""Abstract base class for delivery channels."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryRequest:
    """What a channel is asked to deliver.

    `recipient` is already resolved into the channel's address format.
    """

    recipient: str
    message: str
    is_group: bool = False


class Channel(ABC):
    """A transport that delivers one message to one chat destination."""

    name: str = "unknown"

    # Appended to bare phone numbers during recipient resolution
    contact_suffix: str = ""

    @abstractmethod
    async def send(self, request: DeliveryRequest) -> None:
        """
        Deliver a message.

        Args:
            request: Resolved recipient, message text and group flag

        Raises:
            ConfigurationError: Channel is not configured
            RecipientResolutionError: Destination unknown on the network
            TransportError: Network failure, timeout or rejected request
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the channel."""
        return None
