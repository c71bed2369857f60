"""Chain client protocol — EVM JSON-RPC abstraction."""
from typing import Any, Protocol


class ChainClient(Protocol):
    """Abstract interface for blockchain RPC interactions."""

    async def rpc_call(self, method: str, params: list[Any] | None = None) -> Any: ...

    async def eth_call(self, to: str, data: str) -> str: ...

    async def get_balance(self, address: str) -> int: ...
