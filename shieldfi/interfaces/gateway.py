"""Protection gateway protocol — the transactions the executor can send."""
from typing import Protocol

from ..models import TxReceipt


class ProtectionGateway(Protocol):
    """Abstract interface for sending protective transactions."""

    async def repay(self, market: str, amount: float) -> TxReceipt: ...

    async def decrease_liquidity(self, position_id: str, liquidity: int) -> TxReceipt: ...

    async def collect(self, position_id: str) -> TxReceipt: ...
