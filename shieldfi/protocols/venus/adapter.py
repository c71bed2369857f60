"""Venus lending adapter — reads entered markets and account liquidity."""
from __future__ import annotations

import asyncio
import logging

from ...chains.evm.abi import decode_result, decode_single, encode_call
from ...config import LendingConfig
from ...interfaces.chain import ChainClient
from ...models import LendingState, MarketEntry
from . import parser

logger = logging.getLogger(__name__)


class VenusAdapter:
    """Fetch and parse a Venus-style lending position on BSC."""

    def __init__(self, chain_client: ChainClient, config: LendingConfig) -> None:
        self._client = chain_client
        self._comptroller = config.comptroller
        self._oracle = config.oracle
        self._blocks_per_year = config.blocks_per_year
        self._symbols = {addr.lower(): sym for addr, sym in config.markets.items()}

    async def _call(self, to: str, signature: str, args: list, types: list[str]):
        data = await self._client.eth_call(to, encode_call(signature, args))
        return decode_result(types, data)

    async def _entered_markets(self, address: str) -> list[str]:
        (markets,) = await self._call(
            self._comptroller, "getAssetsIn(address)", [address], ["address[]"]
        )
        return list(markets)

    async def _account_liquidity(self, address: str) -> tuple[int, int, int]:
        return await self._call(
            self._comptroller,
            "getAccountLiquidity(address)",
            [address],
            ["uint256", "uint256", "uint256"],
        )

    async def _read_market(self, address: str, market: str) -> MarketEntry:
        snapshot, price, supply_rate, borrow_rate = await asyncio.gather(
            self._call(
                market,
                "getAccountSnapshot(address)",
                [address],
                ["uint256", "uint256", "uint256", "uint256"],
            ),
            self._client.eth_call(
                self._oracle, encode_call("getUnderlyingPrice(address)", [market])
            ),
            self._client.eth_call(market, encode_call("supplyRatePerBlock()")),
            self._client.eth_call(market, encode_call("borrowRatePerBlock()")),
        )
        return parser.parse_market(
            market=market,
            symbol=self._symbols.get(market.lower(), "Unknown"),
            snapshot=snapshot,
            underlying_price=decode_single("uint256", price),
            supply_rate=decode_single("uint256", supply_rate),
            borrow_rate=decode_single("uint256", borrow_rate),
            blocks_per_year=self._blocks_per_year,
        )

    async def get_lending_state(self, address: str) -> LendingState:
        try:
            markets = await self._entered_markets(address)
            if not markets:
                return LendingState.empty()

            (_, liquidity_raw, shortfall_raw), entries = await asyncio.gather(
                self._account_liquidity(address),
                asyncio.gather(*(self._read_market(address, m) for m in markets)),
            )
        except Exception as e:
            logger.error("Error fetching lending positions for %s: %s", address, e)
            return LendingState.empty(error=str(e))

        total_supply = sum(m.supply_usd for m in entries)
        total_borrow = sum(m.borrow_usd for m in entries)
        liquidity_usd = liquidity_raw / parser.WAD
        shortfall_usd = shortfall_raw / parser.WAD
        hf = parser.health_factor(liquidity_usd, shortfall_usd, total_borrow)

        state = LendingState(
            health_factor=round(hf, 4),
            total_supplied_usd=round(total_supply, 2),
            total_borrowed_usd=round(total_borrow, 2),
            markets=tuple(
                m for m in entries if m.supply_balance > 0 or m.borrow_balance > 0
            ),
            liquidation_risk=parser.liquidation_tier(hf),
            net_apy=round(parser.net_apy(entries), 2),
            liquidity_usd=round(liquidity_usd, 2),
            shortfall_usd=round(shortfall_usd, 2),
        )
        logger.info(
            "Lending %s: supplied $%.2f borrowed $%.2f HF %.2f",
            address, state.total_supplied_usd, state.total_borrowed_usd, state.health_factor,
        )
        return state
