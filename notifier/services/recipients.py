"""Recipient address normalisation for delivery channels."""

import re

from notifier.config import RecipientsConfig, get_config
from notifier.core.exceptions import RecipientResolutionError

_NON_DIGITS = re.compile(r"\D")


def is_qualified(recipient: str) -> bool:
    """True if the recipient already carries a network suffix (e.g. `...@g.us`)."""
    return "@" in recipient


def looks_like_group(recipient: str, config: RecipientsConfig | None = None) -> bool:
    """Guess whether a recipient addresses a group rather than a phone number.

    Group identifiers carry the group suffix or contain letters (class group
    names); phone numbers are digits with optional formatting.
    """
    config = config or get_config().recipients
    value = recipient.strip()
    if value.endswith(config.group_suffix):
        return True
    if is_qualified(value):
        return False
    return bool(re.search(r"[A-Za-z]", value))


def normalize_number(recipient: str, config: RecipientsConfig | None = None) -> str:
    """Strip formatting and map a local-format number to international form.

    "0812-3456-7890" -> "6281234567890" with country prefix "62".
    """
    config = config or get_config().recipients
    digits = _NON_DIGITS.sub("", recipient)
    if not digits:
        raise RecipientResolutionError(f"Recipient {recipient!r} contains no digits")
    if config.local_prefix and digits.startswith(config.local_prefix):
        digits = config.country_prefix + digits[len(config.local_prefix) :]
    return digits


def resolve_address(
    recipient: str,
    is_group: bool,
    contact_suffix: str,
    config: RecipientsConfig | None = None,
) -> str:
    """Turn a stored recipient into the address a channel sends to.

    Groups and already-qualified identifiers pass through unchanged; numbers
    are normalised and get the channel's individual-contact suffix.
    """
    value = recipient.strip()
    if not value:
        raise RecipientResolutionError("Recipient is empty")
    if is_group or is_qualified(value):
        return value
    return normalize_number(value, config) + contact_suffix
