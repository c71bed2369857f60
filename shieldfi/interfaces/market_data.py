"""Market data oracle protocol — token price / liquidity abstraction."""
from typing import Protocol

from ..oracles.types import TokenMarket


class MarketDataOracle(Protocol):
    """Abstract interface for fetching per-token market data."""

    async def fetch_markets(self, token_addresses: list[str]) -> dict[str, TokenMarket]: ...
