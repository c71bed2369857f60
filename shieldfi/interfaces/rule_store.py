"""Rule store protocol — per-address protection rules."""
from typing import Protocol

from ..models import Rule, RuleType


class RuleStore(Protocol):
    """Abstract interface for reading and managing protection rules."""

    async def list_rules(self, address: str) -> list[Rule]: ...

    async def list_active_rules(self, address: str) -> list[Rule]: ...

    async def get_rule(self, rule_id: str) -> Rule | None: ...

    async def create_rule(
        self,
        address: str,
        rule_type: RuleType,
        threshold_bps: int,
        auto_execute: bool = False,
        description: str = "",
    ) -> Rule: ...

    async def toggle_rule(self, rule_id: str) -> Rule: ...

    async def delete_rule(self, rule_id: str) -> None: ...

    async def mark_triggered(self, rule_id: str) -> None: ...
