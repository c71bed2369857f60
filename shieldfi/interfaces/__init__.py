"""Protocol interfaces for the protection agent."""
from .advisor import AiAdvisor
from .audit_log import AuditLog
from .chain import ChainClient
from .gateway import ProtectionGateway
from .market_data import MarketDataOracle
from .notifier import Notifier
from .readers import AmmReader, LendingReader, WalletReader
from .rule_store import RuleStore

__all__ = [
    "AiAdvisor",
    "AmmReader",
    "AuditLog",
    "ChainClient",
    "LendingReader",
    "MarketDataOracle",
    "Notifier",
    "ProtectionGateway",
    "RuleStore",
    "WalletReader",
]
