"""Shared test fixtures and sample data."""
from __future__ import annotations

import asyncio
import textwrap
from pathlib import Path

import pytest

from shieldfi.config import (
    AppConfig,
    ChainConfig,
    LendingConfig,
    MarketDataConfig,
    MonitorConfig,
    NotificationsConfig,
    RuleConfig,
    WalletConfig,
)
from shieldfi.models import (
    AmmPosition,
    Holding,
    LendingState,
    MarketEntry,
    PositionSnapshot,
    Rule,
    RuleType,
    WalletState,
)

WALLET = "0x1111111111111111111111111111111111111111"
OTHER_WALLET = "0x2222222222222222222222222222222222222222"
VUSDT = "0xfd5840cd36d94d7229439859c0112a4185bc0255"
VBNB = "0xa07c5b74c9b40447a954e1466938b865b6bbea36"
WBNB = "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c"
USDT = "0x55d398326f99059ff775485246999027b3197955"
CAKE = "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"


# ---------------------------------------------------------------------------
# Snapshot builders
# ---------------------------------------------------------------------------


def make_lending(
    health_factor: float = 999.0,
    borrows: tuple[tuple[str, str, float], ...] = (),
) -> LendingState:
    markets = tuple(
        MarketEntry(
            market=market,
            symbol=symbol,
            borrow_balance=amount,
            borrow_usd=amount,
            price_usd=1.0,
        )
        for market, symbol, amount in borrows
    )
    total_borrowed = sum(m.borrow_usd for m in markets)
    return LendingState(
        health_factor=health_factor,
        total_supplied_usd=total_borrowed * health_factor if markets else 0.0,
        total_borrowed_usd=total_borrowed,
        markets=markets,
        liquidation_risk="NONE" if health_factor >= 999 else "MEDIUM",
    )


def make_lp(position_id: str = "4242", impermanent_loss: float = 0.0, liquidity: int = 10**18) -> AmmPosition:
    return AmmPosition(
        position_id=position_id,
        token0=WBNB,
        token1=USDT,
        token0_symbol="WBNB",
        token1_symbol="USDT",
        fee=2500,
        tick_lower=-1000,
        tick_upper=1000,
        current_tick=0,
        in_range=True,
        liquidity=liquidity,
        impermanent_loss=impermanent_loss,
    )


def make_wallet(*holdings: tuple[str, float, float, float]) -> WalletState:
    """Build a wallet from ``(symbol, usd_value, change_24h, liquidity_usd)``."""
    total = sum(h[1] for h in holdings)
    built = sorted(
        (
            Holding(
                symbol=symbol,
                address=f"0x{index + 1:040x}",
                balance=usd,
                price_usd=1.0,
                usd_value=usd,
                price_change_24h=change,
                liquidity_usd=depth,
                percentage=usd / total * 100 if total else 0.0,
            )
            for index, (symbol, usd, change, depth) in enumerate(holdings)
        ),
        key=lambda h: h.usd_value,
        reverse=True,
    )
    top = built[0] if built else None
    return WalletState(
        holdings=tuple(built),
        total_value_usd=total,
        max_concentration=top.percentage if top else 0.0,
        max_concentration_token=top.symbol if top else "N/A",
    )


def make_snapshot(
    lending: LendingState | None = None,
    amm_positions: tuple[AmmPosition, ...] = (),
    wallet: WalletState | None = None,
    address: str = WALLET,
    errors: dict[str, str] | None = None,
) -> PositionSnapshot:
    return PositionSnapshot(
        address=address,
        lending=lending or LendingState(),
        amm_positions=amm_positions,
        wallet=wallet or WalletState(),
        errors=errors or {},
    )


def make_rule(
    rule_type: RuleType,
    threshold_bps: int,
    rule_id: str = "r1",
    auto_execute: bool = True,
    active: bool = True,
) -> Rule:
    return Rule(
        id=rule_id,
        owner=WALLET,
        rule_type=rule_type,
        threshold_bps=threshold_bps,
        auto_execute=auto_execute,
        active=active,
    )


@pytest.fixture()
def healthy_snapshot() -> PositionSnapshot:
    return make_snapshot(
        wallet=make_wallet(
            ("USDT", 400.0, 0.1, 5_000_000.0),
            ("WBNB", 300.0, 1.0, 5_000_000.0),
            ("CAKE", 300.0, 1.5, 2_000_000.0),
        )
    )


@pytest.fixture()
def risky_snapshot() -> PositionSnapshot:
    return make_snapshot(
        lending=make_lending(1.05, borrows=((VUSDT, "vUSDT", 1000.0), (VBNB, "vBNB", 2.0))),
        amm_positions=(make_lp("4242", impermanent_loss=6.5),),
        wallet=make_wallet(
            ("CAKE", 850.0, 12.0, 50_000.0),
            ("USDT", 150.0, 0.0, 5_000_000.0),
        ),
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_app_config(sample_chain_config: ChainConfig) -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(scan_interval_seconds=30, history_size=100),
        wallets=(
            WalletConfig(
                label="test-wallet",
                address=WALLET,
                rules=(RuleConfig(type="HEALTH_FACTOR", threshold_bps=150),),
            ),
        ),
        chain=sample_chain_config,
        lending=LendingConfig(native_market=VBNB, markets={VUSDT: "vUSDT", VBNB: "vBNB"}),
        market_data=MarketDataConfig(
            wrapped_native=WBNB,
            known_tokens={"WBNB": WBNB, "USDT": USDT},
            stablecoins=(USDT,),
        ),
        notifications=NotificationsConfig(),
    )


# ---------------------------------------------------------------------------
# YAML fixtures
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    monitor:
      scan_interval_seconds: 15
      history_size: 50

    wallets:
      - label: test-wallet
        address: "{WALLET}"
        interval_seconds: 60
        rules:
          - type: HEALTH_FACTOR
            threshold_bps: 150
            auto_execute: true
            description: keep HF above 1.5
          - type: CONCENTRATION_LIMIT
            threshold_bps: 5000

    chain:
      name: bsc
      chain_id: 56
      rpc_endpoints:
        - "https://rpc1.example.com"
        - "https://rpc2.example.com"
      rpc_timeout: 10
      private_key: "${{TEST_PRIVATE_KEY}}"

    lending:
      comptroller: "0xfd36e2c2a6789db23113685031d7f16329158384"
      native_market: "{VBNB}"
      markets:
        "{VUSDT}": vUSDT

    amm:
      position_manager: "0x46a15b0b27311cedf172ab29e4f4766fbe7f4364"

    market_data:
      wrapped_native: "{WBNB}"
      known_tokens:
        USDT: "{USDT}"
      stablecoins:
        - "{USDT}"

    advisor:
      enabled: "${{TEST_ADVISOR_ENABLED}}"
      api_key: "${{TEST_ADVISOR_KEY}}"
      min_score: 30

    notifications:
      telegram:
        enabled: true
        alert_bot_token: "${{TEST_TG_ALERT_TOKEN}}"
        log_bot_token: "${{TEST_TG_LOG_TOKEN}}"
        chat_id: "${{TEST_TG_CHAT_ID}}"
      email:
        enabled: false
""")


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """Write a sample config.yaml to a temp directory and return its path."""
    p = tmp_path / "config.yaml"
    p.write_text(SAMPLE_YAML)
    return p


@pytest.fixture()
def env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set test environment variables."""
    values = {
        "TEST_PRIVATE_KEY": "0x" + "11" * 32,
        "TEST_ADVISOR_ENABLED": "true",
        "TEST_ADVISOR_KEY": "sk-test",
        "TEST_TG_ALERT_TOKEN": "alert-token-123",
        "TEST_TG_LOG_TOKEN": "log-token-456",
        "TEST_TG_CHAT_ID": "999",
    }
    for k, v in values.items():
        monkeypatch.setenv(k, v)
    return values


# ---------------------------------------------------------------------------
# Chain fakes
# ---------------------------------------------------------------------------


class PendingNonceChain:
    """Chain client fake whose pending nonce only advances on submission."""

    chain_id = 56

    def __init__(self, receipt_delay: float = 0.0) -> None:
        self.receipt_delay = receipt_delay
        self.pending = 0
        self.nonces: list[int] = []
        self.calls: list[str] = []

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        await asyncio.sleep(0)
        self.nonces.append(self.pending)
        self.calls.append("nonce")
        return self.pending

    async def get_gas_price(self) -> int:
        await asyncio.sleep(0)
        return 10**9

    async def send_raw_transaction(self, raw: str) -> str:
        await asyncio.sleep(0)
        self.pending += 1
        self.calls.append("send")
        return f"0x{self.pending:064x}"

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> dict:
        await asyncio.sleep(self.receipt_delay)
        self.calls.append("receipt")
        return {"status": "0x1", "gasUsed": "0x5208"}
