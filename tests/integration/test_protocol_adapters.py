"""Integration tests for lending, AMM and wallet adapters against a fake chain."""
from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_abi import encode

from conftest import USDT, VUSDT, WALLET, WBNB
from shieldfi.chains.evm.abi import encode_call
from shieldfi.config import AmmConfig, LendingConfig, MarketDataConfig
from shieldfi.models import ZERO_ADDRESS
from shieldfi.oracles.types import TokenMarket
from shieldfi.protocols.pancakeswap import PancakeSwapAdapter
from shieldfi.protocols.venus import VenusAdapter
from shieldfi.protocols.wallet import WalletAdapter
from shieldfi.protocols.wallet.adapter import NATIVE_SENTINEL

COMPTROLLER = "0xfd36e2c2a6789db23113685031d7f16329158384"
PRICE_ORACLE = "0xd8b6da2bfec71d684d3e2a2fc9492ddad5c3787f"
POSITION_MANAGER = "0x46a15b0b27311cedf172ab29e4f4766fbe7f4364"
FACTORY = "0x0bfbcf9fa4f9c56b0f40a671ad40e0805a091865"
POOL = "0x36696169c63e42cd08ce11f5deebbcebae652050"
CAKE = "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"


class FakeChain:
    """Answers eth_call from a table keyed by (contract, calldata)."""

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], str] = {}
        self.native_balance = 0

    def on(self, to: str, signature: str, args: list[Any], types: list[str], values: list[Any]) -> None:
        self.responses[(to.lower(), encode_call(signature, args))] = "0x" + encode(types, values).hex()

    async def eth_call(self, to: str, data: str) -> str:
        try:
            return self.responses[(to.lower(), data)]
        except KeyError:
            raise RuntimeError("execution reverted") from None

    async def get_balance(self, address: str) -> int:
        return self.native_balance

    async def rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        raise NotImplementedError(method)


# ---------------------------------------------------------------------------
# Venus
# ---------------------------------------------------------------------------


@pytest.fixture()
def lending_chain() -> FakeChain:
    chain = FakeChain()
    chain.on(COMPTROLLER, "getAssetsIn(address)", [WALLET], ["address[]"], [[VUSDT]])
    chain.on(
        COMPTROLLER, "getAccountLiquidity(address)", [WALLET],
        ["uint256", "uint256", "uint256"], [0, 500 * 10**18, 0],
    )
    chain.on(
        VUSDT, "getAccountSnapshot(address)", [WALLET],
        ["uint256", "uint256", "uint256", "uint256"],
        [0, 1500 * 10**8, 1000 * 10**18, 10**28],
    )
    chain.on(PRICE_ORACLE, "getUnderlyingPrice(address)", [VUSDT], ["uint256"], [10**18])
    chain.on(VUSDT, "supplyRatePerBlock()", [], ["uint256"], [0])
    chain.on(VUSDT, "borrowRatePerBlock()", [], ["uint256"], [0])
    return chain


def _venus(chain: FakeChain) -> VenusAdapter:
    return VenusAdapter(
        chain,
        LendingConfig(comptroller=COMPTROLLER, oracle=PRICE_ORACLE, markets={VUSDT: "vUSDT"}),
    )


class TestVenusAdapter:
    @pytest.mark.asyncio
    async def test_reads_position(self, lending_chain: FakeChain) -> None:
        state = await _venus(lending_chain).get_lending_state(WALLET)

        assert state.error is None
        assert state.total_supplied_usd == 1500.0
        assert state.total_borrowed_usd == 1000.0
        assert state.health_factor == pytest.approx(1.5)
        assert state.liquidation_risk == "MODERATE"
        assert state.liquidity_usd == 500.0
        assert [m.symbol for m in state.markets] == ["vUSDT"]

    @pytest.mark.asyncio
    async def test_no_entered_markets(self) -> None:
        chain = FakeChain()
        chain.on(COMPTROLLER, "getAssetsIn(address)", [WALLET], ["address[]"], [[]])
        state = await _venus(chain).get_lending_state(WALLET)
        assert state.health_factor == 999.0
        assert state.error is None

    @pytest.mark.asyncio
    async def test_rpc_failure_is_soft(self) -> None:
        state = await _venus(FakeChain()).get_lending_state(WALLET)
        assert state.error == "execution reverted"
        assert state.liquidation_risk == "UNKNOWN"


# ---------------------------------------------------------------------------
# PancakeSwap
# ---------------------------------------------------------------------------


@pytest.fixture()
def amm_chain() -> FakeChain:
    chain = FakeChain()
    chain.on(POSITION_MANAGER, "balanceOf(address)", [WALLET], ["uint256"], [2])
    chain.on(POSITION_MANAGER, "tokenOfOwnerByIndex(address,uint256)", [WALLET, 0], ["uint256"], [11])
    chain.on(POSITION_MANAGER, "tokenOfOwnerByIndex(address,uint256)", [WALLET, 1], ["uint256"], [12])
    chain.on(
        POSITION_MANAGER, "positions(uint256)", [11],
        ["uint96", "address", "address", "address", "uint24", "int24", "int24",
         "uint128", "uint256", "uint256", "uint128", "uint128"],
        [0, ZERO_ADDRESS, WBNB, USDT, 2500, -1000, 1000, 10**18, 0, 0, 5 * 10**15, 0],
    )
    # Position 12 is unreadable and must be skipped
    chain.on(FACTORY, "getPool(address,address,uint24)", [WBNB, USDT, 2500], ["address"], [POOL])
    chain.on(POOL, "slot0()", [], ["uint160", "int24"], [2**96, 500])
    chain.on(WBNB, "decimals()", [], ["uint8"], [18])
    chain.on(USDT, "decimals()", [], ["uint8"], [18])
    return chain


def _pancake(chain: FakeChain) -> PancakeSwapAdapter:
    return PancakeSwapAdapter(
        chain,
        AmmConfig(
            position_manager=POSITION_MANAGER,
            factory=FACTORY,
            token_symbols={WBNB: "WBNB", USDT: "USDT"},
        ),
    )


class TestPancakeSwapAdapter:
    @pytest.mark.asyncio
    async def test_reads_positions(self, amm_chain: FakeChain) -> None:
        positions = await _pancake(amm_chain).get_amm_positions(WALLET)

        assert len(positions) == 1
        pos = positions[0]
        assert pos.position_id == "11"
        assert pos.pair == "WBNB/USDT"
        assert pos.fee_tier == "0.25%"
        assert pos.in_range is True
        assert pos.current_tick == 500
        assert pos.liquidity == 10**18
        assert pos.fees_earned0 == pytest.approx(0.005)
        assert pos.impermanent_loss > 0
        assert pos.pool_address.lower() == POOL

    @pytest.mark.asyncio
    async def test_no_positions(self) -> None:
        chain = FakeChain()
        chain.on(POSITION_MANAGER, "balanceOf(address)", [WALLET], ["uint256"], [0])
        assert await _pancake(chain).get_amm_positions(WALLET) == []

    @pytest.mark.asyncio
    async def test_enumeration_failure_propagates(self) -> None:
        with pytest.raises(RuntimeError):
            await _pancake(FakeChain()).get_amm_positions(WALLET)


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


def _oracle(markets: dict[str, TokenMarket] | None = None, error: Exception | None = None) -> AsyncMock:
    oracle = AsyncMock()
    if error:
        oracle.fetch_markets = AsyncMock(side_effect=error)
    else:
        oracle.fetch_markets = AsyncMock(return_value=markets or {})
    return oracle


MARKETS = {
    WBNB: TokenMarket(price_usd=600.0, price_change_24h=-3.0, liquidity_usd=9e7),
    USDT: TokenMarket(price_usd=1.0),
    CAKE: TokenMarket(price_usd=2.0, price_change_24h=8.0, liquidity_usd=4e5),
}


class TestWalletAdapter:
    @pytest.mark.asyncio
    async def test_known_token_fallback(self) -> None:
        chain = FakeChain()
        chain.native_balance = 10**18
        chain.on(USDT, "balanceOf(address)", [WALLET], ["uint256"], [400 * 10**18])
        adapter = WalletAdapter(
            chain,
            _oracle(MARKETS),
            MarketDataConfig(wrapped_native=WBNB, known_tokens={"USDT": USDT, "WBNB": WBNB}),
        )

        state = await adapter.get_wallet_state(WALLET)

        assert [h.symbol for h in state.holdings] == ["BNB", "USDT"]
        bnb = state.holdings[0]
        assert bnb.is_native is True
        assert bnb.address == NATIVE_SENTINEL
        assert bnb.usd_value == 600.0
        assert bnb.price_change_24h == -3.0
        assert state.total_value_usd == 1000.0
        assert state.max_concentration == 60.0

    @pytest.mark.asyncio
    async def test_explorer_token_list(self) -> None:
        body = {
            "status": "1",
            "result": [
                {"TokenAddress": CAKE, "TokenSymbol": "CAKE",
                 "TokenQuantity": str(50 * 10**18), "TokenDivisor": "18"},
            ],
        }
        response = AsyncMock()
        response.status = 200
        response.json = AsyncMock(return_value=body)
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        mock_session = AsyncMock()
        mock_session.get = MagicMock(return_value=response)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)

        adapter = WalletAdapter(
            FakeChain(),
            _oracle(MARKETS),
            MarketDataConfig(wrapped_native=WBNB, bscscan_api_key="key"),
        )
        with patch("shieldfi.protocols.wallet.adapter.aiohttp.ClientSession", return_value=mock_session):
            with patch("shieldfi.protocols.wallet.adapter.aiohttp.TCPConnector"):
                state = await adapter.get_wallet_state(WALLET)

        assert mock_session.get.call_args.kwargs["params"]["action"] == "tokenlist"
        assert [h.symbol for h in state.holdings] == ["CAKE"]
        assert state.holdings[0].usd_value == 100.0
        assert state.holdings[0].liquidity_usd == 4e5

    @pytest.mark.asyncio
    async def test_oracle_failure_is_soft(self) -> None:
        adapter = WalletAdapter(
            FakeChain(), _oracle(error=RuntimeError("dexscreener down")), MarketDataConfig()
        )
        state = await adapter.get_wallet_state(WALLET)
        assert state.error == "dexscreener down"
        assert state.holdings == ()
