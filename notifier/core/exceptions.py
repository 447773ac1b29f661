"""Error taxonomy for the notification pipeline.

Delivery errors are absorbed into job state by the worker; store errors
propagate so callers never assume a transition happened.
"""


class NotifierError(Exception):
    """Base class for all notifier errors."""


class DeliveryError(NotifierError):
    """A channel failed to deliver a message."""

    category: str = "delivery"
    retryable: bool = True

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def describe(self) -> str:
        """Human-readable text stored in the job's error_message."""
        return f"[{self.category}] {self.detail}"


class ConfigurationError(DeliveryError):
    """Channel is not configured (no webhook URL, no session credentials)."""

    category = "configuration"
    retryable = False


class RecipientResolutionError(DeliveryError):
    """Address cannot be mapped or is not registered on the network.

    Needs a recipient correction followed by a manual retry.
    """

    category = "recipient"
    retryable = False


class TransportError(DeliveryError):
    """Network failure, timeout or non-2xx response. Presumed transient."""

    category = "transport"
    retryable = True


class StoreError(NotifierError):
    """A job store write failed; the transition must be treated as not applied."""


class JobNotFoundError(NotifierError):
    """No job exists with the given id."""

    def __init__(self, job_id: object) -> None:
        super().__init__(f"Notification job {job_id} not found")
        self.job_id = job_id


class JobStateError(NotifierError):
    """The job exists but its current status does not allow the operation."""

    def __init__(self, job_id: object, status: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} notification job {job_id} while {status}")
        self.job_id = job_id
        self.status = status
