"""Address validation helpers."""
from __future__ import annotations

from eth_utils import is_address, to_checksum_address

from .errors import InvalidInputError


def require_address(value: str) -> str:
    """Return *value* in checksum form, or raise InvalidInputError."""
    if not isinstance(value, str) or not is_address(value.strip()):
        raise InvalidInputError(f"Invalid address: {value!r}")
    return to_checksum_address(value.strip())


def address_key(value: str) -> str:
    """Case-insensitive dictionary key for an address."""
    return value.strip().lower()


def short_address(address: str) -> str:
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address
