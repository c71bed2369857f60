"""Exception types raised by the protection agent."""
from __future__ import annotations


class ShieldError(Exception):
    """Base class for agent errors."""


class InvalidInputError(ShieldError, ValueError):
    """Malformed address, unknown rule id or rule type.

    Raised before any pipeline component runs.
    """


class ExecutionError(ShieldError):
    """A protective transaction could not be sent or was reverted."""
