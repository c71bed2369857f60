"""Market data oracles."""
from .dexscreener import DexScreenerOracle
from .types import TokenMarket

__all__ = ["DexScreenerOracle", "TokenMarket"]
