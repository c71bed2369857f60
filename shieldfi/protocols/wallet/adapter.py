"""Wallet adapter — native + token balances priced through a market oracle."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...chains.evm.abi import decode_single, encode_call
from ...config import MarketDataConfig
from ...interfaces.chain import ChainClient
from ...interfaces.market_data import MarketDataOracle
from ...models import Holding, WalletState
from ...oracles.types import TokenMarket
from .parser import build_wallet_state

logger = logging.getLogger(__name__)

NATIVE_SENTINEL = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class WalletAdapter:
    """Read spot holdings of an address."""

    def __init__(
        self,
        chain_client: ChainClient,
        oracle: MarketDataOracle,
        config: MarketDataConfig,
    ) -> None:
        self._client = chain_client
        self._oracle = oracle
        self._bscscan_url = config.bscscan_url
        self._bscscan_api_key = config.bscscan_api_key
        self._wrapped_native = config.wrapped_native
        self._native_symbol = config.native_symbol
        self._known_tokens = dict(config.known_tokens)

    async def _token_list_from_explorer(self, address: str) -> list[dict[str, Any]] | None:
        """Token balances from the block explorer, or None when unavailable."""
        params = {
            "module": "account",
            "action": "tokenlist",
            "address": address,
            "apikey": self._bscscan_api_key,
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(self._bscscan_url, params=params) as response:
                    if response.status != 200:
                        logger.error("Explorer token list failed: HTTP %s", response.status)
                        return None
                    data = await response.json()
        except Exception as e:
            logger.error("Explorer token list error: %s", e)
            return None

        if data.get("status") != "1" or not isinstance(data.get("result"), list):
            logger.warning("Explorer returned no token list: %s", data.get("message"))
            return None

        tokens = []
        for t in data["result"]:
            decimals = int(t.get("TokenDivisor") or 18)
            tokens.append({
                "address": t.get("TokenAddress", ""),
                "symbol": t.get("TokenSymbol") or "UNKNOWN",
                "balance": int(t.get("TokenQuantity") or 0) / 10**decimals,
            })
        return tokens

    async def _known_token_balances(self, address: str) -> list[dict[str, Any]]:
        async def balance_of(symbol: str, token: str) -> dict[str, Any]:
            try:
                raw = decode_single(
                    "uint256",
                    await self._client.eth_call(
                        token, encode_call("balanceOf(address)", [address])
                    ),
                )
            except Exception as e:
                logger.debug("balanceOf %s failed: %s", symbol, e)
                raw = 0
            return {"address": token, "symbol": symbol, "balance": raw / 10**18}

        results = await asyncio.gather(
            *(balance_of(sym, addr) for sym, addr in self._known_tokens.items())
        )
        return [r for r in results if r["balance"] > 0]

    async def _token_list(self, address: str) -> list[dict[str, Any]]:
        if self._bscscan_api_key:
            tokens = await self._token_list_from_explorer(address)
            if tokens is not None:
                return tokens
        return await self._known_token_balances(address)

    async def get_wallet_state(self, address: str) -> WalletState:
        try:
            native_wei, tokens = await asyncio.gather(
                self._client.get_balance(address), self._token_list(address)
            )
            lookups = [self._wrapped_native] + [t["address"] for t in tokens]
            markets = await self._oracle.fetch_markets(lookups)
        except Exception as e:
            logger.error("Error fetching wallet balances for %s: %s", address, e)
            return WalletState.empty(error=str(e))

        holdings: list[Holding] = []
        native_balance = native_wei / 10**18
        if native_balance > 0:
            holdings.append(
                self._holding(
                    self._native_symbol, NATIVE_SENTINEL, native_balance,
                    markets.get(self._wrapped_native.lower()), is_native=True,
                )
            )
        for t in tokens:
            holdings.append(
                self._holding(
                    t["symbol"], t["address"], t["balance"],
                    markets.get(t["address"].lower()),
                )
            )

        state = build_wallet_state(holdings)
        logger.info(
            "Wallet %s: %d holdings worth $%.2f",
            address, len(state.holdings), state.total_value_usd,
        )
        return state

    @staticmethod
    def _holding(
        symbol: str,
        address: str,
        balance: float,
        market: TokenMarket | None,
        is_native: bool = False,
    ) -> Holding:
        market = market or TokenMarket(price_usd=0.0)
        return Holding(
            symbol=symbol,
            address=address,
            balance=round(balance, 6),
            price_usd=market.price_usd,
            usd_value=round(balance * market.price_usd, 2),
            price_change_24h=market.price_change_24h,
            liquidity_usd=market.liquidity_usd,
            is_native=is_native,
        )
