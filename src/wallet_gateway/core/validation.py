"""Identifier validation shared by the gateway and the API schemas."""

from __future__ import annotations

import re
import uuid

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(address: str) -> str:
    """Validate a wallet address and return its lower-case form.

    Raises:
        ValueError: If the address is not ``0x`` followed by 40 hex characters
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        raise ValueError("Invalid wallet address format")
    return address.lower()


def is_uuid4(value: str) -> bool:
    """Return True if ``value`` is a canonical UUIDv4 string."""
    try:
        parsed = uuid.UUID(value)
    except (TypeError, ValueError, AttributeError):
        return False
    return parsed.version == 4 and str(parsed) == value.lower()
