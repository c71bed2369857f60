"""Service modules"""
from .agent import ShieldAgent
from .alerts import AlertDispatcher
from .decision_engine import DecisionEngine
from .executor import ProtectionExecutor
from .monitor import Monitor
from .snapshot_service import SnapshotService

__all__ = [
    "AlertDispatcher",
    "DecisionEngine",
    "Monitor",
    "ProtectionExecutor",
    "ShieldAgent",
    "SnapshotService",
]
