"""EVM JSON-RPC client with fallback support."""
import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if not value:
        return 0
    return int(value, 16)


class EvmClient:
    """EVM JSON-RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.current_rpc_index = 0
        self._request_id = 0

    async def rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RuntimeError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, method, e)
                continue

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    async def eth_call(self, to: str, data: str) -> str:
        """Read-only contract call at the latest block; returns hex data."""
        return await self.rpc_call("eth_call", [{"to": to, "data": data}, "latest"]) or "0x"

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return _to_int(await self.rpc_call("eth_getBalance", [address, "latest"]))

    async def get_chain_id(self) -> int:
        return _to_int(await self.rpc_call("eth_chainId"))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return _to_int(await self.rpc_call("eth_getTransactionCount", [address, block]))

    async def get_gas_price(self) -> int:
        return _to_int(await self.rpc_call("eth_gasPrice"))

    async def send_raw_transaction(self, raw_tx: str) -> str:
        return await self.rpc_call("eth_sendRawTransaction", [raw_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self.rpc_call("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float = 120.0, poll_interval: float = 2.0
    ) -> dict[str, Any]:
        """Poll until *tx_hash* is mined; raises TimeoutError otherwise."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt:
                return receipt
            if loop.time() >= deadline:
                raise TimeoutError(f"Transaction {tx_hash} not mined after {timeout}s")
            await asyncio.sleep(poll_interval)

    async def is_connected(self) -> bool:
        try:
            return await self.get_chain_id() == self.chain_id
        except Exception as e:
            logger.error("Chain connectivity check failed: %s", e)
            return False
