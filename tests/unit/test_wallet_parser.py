"""Unit tests for portfolio composition."""
from __future__ import annotations

from shieldfi.models import Holding
from shieldfi.protocols.wallet.parser import build_wallet_state


def _holding(symbol: str, usd: float, balance: float = 1.0) -> Holding:
    return Holding(symbol=symbol, address=f"0x{symbol.lower():0>40}"[:42], balance=balance, usd_value=usd)


class TestBuildWalletState:
    def test_sorted_with_percentages(self) -> None:
        state = build_wallet_state(
            [_holding("USDT", 250.0), _holding("BNB", 600.0), _holding("CAKE", 150.0)]
        )
        assert [h.symbol for h in state.holdings] == ["BNB", "USDT", "CAKE"]
        assert [h.percentage for h in state.holdings] == [60.0, 25.0, 15.0]
        assert state.total_value_usd == 1000.0
        assert state.max_concentration == 60.0
        assert state.max_concentration_token == "BNB"

    def test_zero_balances_dropped(self) -> None:
        state = build_wallet_state([_holding("USDT", 0.0, balance=0.0), _holding("BNB", 10.0)])
        assert [h.symbol for h in state.holdings] == ["BNB"]
        assert state.max_concentration == 100.0

    def test_unpriced_holdings(self) -> None:
        state = build_wallet_state([_holding("MEME", 0.0, balance=5.0)])
        assert state.holdings[0].percentage == 0.0
        assert state.total_value_usd == 0.0

    def test_empty(self) -> None:
        state = build_wallet_state([])
        assert state.holdings == ()
        assert state.max_concentration_token == "N/A"
