"""Rule stores and audit logs."""
from .audit import InMemoryAuditLog, OnChainAuditLog
from .rules import InMemoryRuleStore, OnChainRuleStore

__all__ = ["InMemoryAuditLog", "InMemoryRuleStore", "OnChainAuditLog", "OnChainRuleStore"]
