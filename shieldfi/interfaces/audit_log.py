"""Audit log protocol — append-only record of protective actions."""
from typing import Any, Protocol

from ..models import AuditRecord


class AuditLog(Protocol):
    """Abstract interface for the protective-action audit trail."""

    async def append(self, record: AuditRecord) -> str: ...

    async def history(self, address: str) -> list[AuditRecord]: ...

    async def stats(self, address: str) -> dict[str, Any]: ...
