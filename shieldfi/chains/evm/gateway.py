"""On-chain protection gateway: lending repay and LP withdrawal."""
from __future__ import annotations

import logging
import time
from decimal import Decimal

from ...errors import ExecutionError
from ...models import TxReceipt
from .abi import MAX_UINT128, decode_single, encode_call
from .client import EvmClient
from .signer import EvmSigner

logger = logging.getLogger(__name__)

APPROVE_GAS = 100_000
REPAY_GAS = 300_000
DECREASE_GAS = 500_000
COLLECT_GAS = 300_000
DEADLINE_SECONDS = 600


def to_wei(amount: float, decimals: int = 18) -> int:
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


class EvmProtectionGateway:
    """Sends repay / decreaseLiquidity / collect transactions."""

    def __init__(
        self,
        client: EvmClient,
        signer: EvmSigner | None,
        native_market: str = "",
        position_manager: str = "",
    ) -> None:
        self.client = client
        self.signer = signer
        self.native_market = native_market
        self.position_manager = position_manager

    def _require_signer(self) -> EvmSigner:
        if self.signer is None:
            raise ExecutionError("No signer available (private key not set)")
        return self.signer

    async def repay(self, market: str, amount: float) -> TxReceipt:
        signer = self._require_signer()
        amount_wei = to_wei(amount)
        if amount_wei <= 0:
            raise ExecutionError(f"Invalid repay amount: {amount}")

        if self.native_market and market.lower() == self.native_market.lower():
            # Native market: repayBorrow() is payable and takes no arguments
            return await signer.send_transaction(
                market, encode_call("repayBorrow()"), value=amount_wei, gas=REPAY_GAS
            )

        underlying = decode_single(
            "address", await self.client.eth_call(market, encode_call("underlying()"))
        )
        await signer.send_transaction(
            underlying,
            encode_call("approve(address,uint256)", [market, amount_wei]),
            gas=APPROVE_GAS,
        )
        return await signer.send_transaction(
            market,
            encode_call("repayBorrow(uint256)", [amount_wei]),
            gas=REPAY_GAS,
        )

    def _require_position_manager(self) -> str:
        if not self.position_manager:
            raise ExecutionError("Position manager address not configured")
        return self.position_manager

    async def decrease_liquidity(self, position_id: str, liquidity: int) -> TxReceipt:
        signer = self._require_signer()
        manager = self._require_position_manager()
        deadline = int(time.time()) + DEADLINE_SECONDS
        data = encode_call(
            "decreaseLiquidity((uint256,uint128,uint256,uint256,uint256))",
            [(int(position_id), int(liquidity), 0, 0, deadline)],
        )
        return await signer.send_transaction(manager, data, gas=DECREASE_GAS)

    async def collect(self, position_id: str) -> TxReceipt:
        signer = self._require_signer()
        manager = self._require_position_manager()
        data = encode_call(
            "collect((uint256,address,uint128,uint128))",
            [(int(position_id), signer.address, MAX_UINT128, MAX_UINT128)],
        )
        return await signer.send_transaction(manager, data, gas=COLLECT_GAS)
