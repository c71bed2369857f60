"""DexScreener market data oracle."""
from __future__ import annotations

import logging
import ssl
from collections.abc import Iterable
from typing import Any

import aiohttp
import certifi

from ..config import MarketDataConfig
from .types import TokenMarket

logger = logging.getLogger(__name__)

BATCH_SIZE = 30


def _float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_pairs(
    pairs: Iterable[dict[str, Any]],
    chain_id: str,
    stablecoins: Iterable[str] = (),
    into: dict[str, TokenMarket] | None = None,
) -> dict[str, TokenMarket]:
    """Map lower-cased token address → TokenMarket from DexScreener pairs.

    The first priced pair seen for a base token wins. Stablecoin quote
    tokens are pinned to $1.
    """
    markets = into if into is not None else {}
    stable = {s.lower() for s in stablecoins}

    for pair in pairs:
        if pair.get("chainId") != chain_id:
            continue
        base = (pair.get("baseToken") or {}).get("address", "").lower()
        quote = (pair.get("quoteToken") or {}).get("address", "").lower()
        price = _float(pair.get("priceUsd"))
        liquidity = _float((pair.get("liquidity") or {}).get("usd"))
        volume = _float((pair.get("volume") or {}).get("h24"))

        if base and price > 0 and base not in markets:
            markets[base] = TokenMarket(
                price_usd=price,
                price_change_24h=_float((pair.get("priceChange") or {}).get("h24")),
                liquidity_usd=liquidity,
                volume_24h=volume,
            )
        if quote and quote in stable and quote not in markets:
            markets[quote] = TokenMarket(
                price_usd=1.0, liquidity_usd=liquidity, volume_24h=volume
            )
    return markets


class DexScreenerOracle:
    """Fetch token prices, 24h change and liquidity from DexScreener."""

    def __init__(self, config: MarketDataConfig) -> None:
        self.base_url = config.dexscreener_url.rstrip("/")
        self.chain_id = config.dex_chain_id
        self.stablecoins = tuple(config.stablecoins)

    async def _fetch_batch(
        self, session: aiohttp.ClientSession, batch: list[str]
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{','.join(batch)}"
        async with session.get(url) as response:
            if response.status != 200:
                logger.error("Error fetching DexScreener data: HTTP %s", response.status)
                return []
            data = await response.json()
            return data.get("pairs") or []

    async def fetch_markets(self, token_addresses: list[str]) -> dict[str, TokenMarket]:
        """Market data keyed by lower-cased address; stablecoins default to $1."""
        markets: dict[str, TokenMarket] = {}
        unique = list(dict.fromkeys(a for a in token_addresses if a))

        if unique:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            async with aiohttp.ClientSession(connector=connector) as session:
                for i in range(0, len(unique), BATCH_SIZE):
                    batch = unique[i : i + BATCH_SIZE]
                    try:
                        pairs = await self._fetch_batch(session, batch)
                    except Exception as e:
                        logger.error("Error fetching DexScreener data: %s", e)
                        continue
                    parse_pairs(pairs, self.chain_id, self.stablecoins, into=markets)

        for stable in self.stablecoins:
            markets.setdefault(stable.lower(), TokenMarket(price_usd=1.0))

        logger.debug("Fetched market data for %d tokens", len(markets))
        return markets
