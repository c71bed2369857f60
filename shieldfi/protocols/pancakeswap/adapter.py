"""PancakeSwap V3 adapter — enumerates LP position NFTs and prices them."""
from __future__ import annotations

import asyncio
import logging

from ...chains.evm.abi import decode_result, decode_single, encode_call
from ...config import AmmConfig
from ...interfaces.chain import ChainClient
from ...models import ZERO_ADDRESS, AmmPosition
from . import parser

logger = logging.getLogger(__name__)

_POSITION_TYPES = [
    "uint96", "address", "address", "address", "uint24", "int24", "int24",
    "uint128", "uint256", "uint256", "uint128", "uint128",
]


class PancakeSwapAdapter:
    """Fetch concentrated-liquidity positions held by an address."""

    def __init__(self, chain_client: ChainClient, config: AmmConfig) -> None:
        self._client = chain_client
        self._manager = config.position_manager
        self._factory = config.factory
        self._symbols = {addr.lower(): sym for addr, sym in config.token_symbols.items()}
        self._decimals_cache: dict[str, int] = {}

    async def _decimals(self, token: str) -> int:
        key = token.lower()
        if key not in self._decimals_cache:
            try:
                data = await self._client.eth_call(token, encode_call("decimals()"))
                self._decimals_cache[key] = decode_single("uint8", data)
            except Exception as e:
                logger.debug("decimals() failed for %s, assuming 18: %s", token, e)
                return 18
        return self._decimals_cache[key]

    async def _token_ids(self, address: str) -> list[int]:
        data = await self._client.eth_call(
            self._manager, encode_call("balanceOf(address)", [address])
        )
        count = decode_single("uint256", data)
        if count == 0:
            return []
        results = await asyncio.gather(
            *(
                self._client.eth_call(
                    self._manager,
                    encode_call("tokenOfOwnerByIndex(address,uint256)", [address, i]),
                )
                for i in range(count)
            )
        )
        return [decode_single("uint256", r) for r in results]

    async def _read_position(self, token_id: int) -> AmmPosition | None:
        data = await self._client.eth_call(
            self._manager, encode_call("positions(uint256)", [token_id])
        )
        (_, _, token0, token1, fee, tick_lower, tick_upper, liquidity,
         _, _, owed0, owed1) = decode_result(_POSITION_TYPES, data)
        if liquidity == 0:
            return None

        pool = decode_single(
            "address",
            await self._client.eth_call(
                self._factory,
                encode_call("getPool(address,address,uint24)", [token0, token1, fee]),
            ),
        )
        if pool == ZERO_ADDRESS:
            return None

        slot0, decimals0, decimals1 = await asyncio.gather(
            self._client.eth_call(pool, encode_call("slot0()")),
            self._decimals(token0),
            self._decimals(token1),
        )
        _, current_tick = decode_result(["uint160", "int24"], slot0[:130])

        amount0, amount1 = parser.amounts_from_liquidity(
            liquidity, current_tick, tick_lower, tick_upper, decimals0, decimals1
        )
        il = parser.estimated_impermanent_loss(tick_lower, tick_upper, current_tick)

        return AmmPosition(
            position_id=str(token_id),
            token0=token0,
            token1=token1,
            token0_symbol=self._symbols.get(token0.lower(), "UNKNOWN"),
            token1_symbol=self._symbols.get(token1.lower(), "UNKNOWN"),
            fee=fee,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick,
            in_range=parser.in_range(tick_lower, tick_upper, current_tick),
            liquidity=liquidity,
            token0_amount=round(amount0, 8),
            token1_amount=round(amount1, 8),
            fees_earned0=round(owed0 / 10**decimals0, 8),
            fees_earned1=round(owed1 / 10**decimals1, 8),
            impermanent_loss=round(il, 4),
            pool_address=pool,
        )

    async def _safe_read(self, token_id: int) -> AmmPosition | None:
        try:
            return await self._read_position(token_id)
        except Exception as e:
            logger.error("Error reading LP position %s: %s", token_id, e)
            return None

    async def get_amm_positions(self, address: str) -> list[AmmPosition]:
        """Open positions of *address*; one unreadable position is skipped.

        Enumeration failures propagate so the snapshot can record them.
        """
        token_ids = await self._token_ids(address)
        positions = await asyncio.gather(*(self._safe_read(t) for t in token_ids))
        found = [p for p in positions if p is not None]
        logger.info("Found %d LP positions for %s", len(found), address)
        return found
