"""Transaction signer backed by eth_account."""
import asyncio
import logging
from typing import Any

from eth_account import Account

from ...errors import ExecutionError
from ...models import TxReceipt
from .client import EvmClient, _to_int

logger = logging.getLogger(__name__)


class EvmSigner:
    """Builds, signs and submits legacy transactions for one key.

    One signer is shared by every monitored address, so nonce lookup,
    signing and submission are serialised; receipts are awaited outside
    the lock.
    """

    def __init__(
        self, client: EvmClient, private_key: str, receipt_timeout: float = 120.0
    ) -> None:
        self.client = client
        self._account = Account.from_key(private_key)
        self.receipt_timeout = receipt_timeout
        self._send_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    async def _submit(self, to: str, data: str, value: int, gas: int) -> str:
        async with self._send_lock:
            nonce = await self.client.get_transaction_count(self.address, "pending")
            gas_price = await self.client.get_gas_price()
            tx: dict[str, Any] = {
                "to": to,
                "data": data,
                "value": value,
                "gas": gas,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": self.client.chain_id,
            }
            signed = self._account.sign_transaction(tx)
            tx_hash = await self.client.send_raw_transaction(
                "0x" + signed.raw_transaction.hex()
            )
        logger.info("Sent transaction %s to %s (nonce %d)", tx_hash, to, nonce)
        return tx_hash

    async def send_transaction(
        self, to: str, data: str, value: int = 0, gas: int = 300_000
    ) -> TxReceipt:
        """Sign and send; raises ExecutionError on a reverted receipt."""
        tx_hash = await self._submit(to, data, value, gas)
        receipt = await self.client.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
        status = _to_int(receipt.get("status"))
        gas_used = _to_int(receipt.get("gasUsed"))
        if status != 1:
            raise ExecutionError(f"Transaction {tx_hash} reverted")
        return TxReceipt(tx_hash=tx_hash, gas_used=gas_used, status=status)
