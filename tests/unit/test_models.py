"""Unit tests for data models."""
from __future__ import annotations

import pytest

from conftest import VBNB, VUSDT, make_lending, make_lp, make_snapshot, make_wallet
from shieldfi.models import (
    ActionType,
    AlertParams,
    CategoryScore,
    Decision,
    DecisionSource,
    LendingState,
    RepayParams,
    RiskLevel,
    RuleType,
    ScanReport,
    Urgency,
    WalletState,
    WithdrawLpParams,
)
from shieldfi.services.risk_scorer import calculate_risk_score


class TestLendingState:
    def test_defaults_mean_no_debt(self) -> None:
        state = LendingState()
        assert state.health_factor == 999.0
        assert state.has_debt is False
        assert state.largest_borrow() is None

    def test_empty_with_error(self) -> None:
        state = LendingState.empty("rpc down")
        assert state.error == "rpc down"
        assert state.liquidation_risk == "UNKNOWN"

    def test_largest_borrow(self) -> None:
        state = make_lending(1.4, borrows=((VUSDT, "vUSDT", 50.0), (VBNB, "vBNB", 120.0)))
        assert state.has_debt is True
        assert state.largest_borrow().symbol == "vBNB"

    def test_frozen(self) -> None:
        state = LendingState()
        with pytest.raises(AttributeError):
            state.health_factor = 1.0  # type: ignore[misc]


class TestAmmPosition:
    def test_fee_tier_and_pair(self) -> None:
        pos = make_lp()
        assert pos.fee_tier == "0.25%"
        assert pos.pair == "WBNB/USDT"


class TestWalletState:
    def test_top_holding(self) -> None:
        wallet = make_wallet(("USDT", 100.0, 0.0, 0.0), ("CAKE", 300.0, 0.0, 0.0))
        assert wallet.top_holding.symbol == "CAKE"
        assert wallet.max_concentration == pytest.approx(75.0)

    def test_empty(self) -> None:
        assert WalletState.empty().top_holding is None


class TestRiskLevel:
    @pytest.mark.parametrize(
        ("total", "level"),
        [
            (0, RiskLevel.SAFE),
            (15, RiskLevel.SAFE),
            (16, RiskLevel.MODERATE),
            (35, RiskLevel.MODERATE),
            (36, RiskLevel.ELEVATED),
            (60, RiskLevel.ELEVATED),
            (61, RiskLevel.CRITICAL),
            (100, RiskLevel.CRITICAL),
        ],
    )
    def test_boundaries(self, total: int, level: RiskLevel) -> None:
        assert RiskLevel.for_score(total) is level


class TestCategoryScore:
    def test_rejects_score_above_max(self) -> None:
        with pytest.raises(ValueError):
            CategoryScore(31, 30, "too high")

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            CategoryScore(-1, 30, "negative")


class TestRuleType:
    def test_parse_name(self) -> None:
        assert RuleType.parse("il_threshold") is RuleType.IL_THRESHOLD

    def test_parse_contract_code(self) -> None:
        assert RuleType.parse(0) is RuleType.HEALTH_FACTOR
        assert RuleType.parse("3") is RuleType.CONCENTRATION_LIMIT

    def test_parse_legacy_alias(self) -> None:
        assert RuleType.parse("VENUS_HEALTH_FACTOR") is RuleType.HEALTH_FACTOR

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError):
            RuleType.parse("MOON")
        with pytest.raises(ValueError):
            RuleType.parse(9)


class TestActionType:
    def test_codes_round_trip(self) -> None:
        for action in ActionType:
            assert ActionType.from_code(action.code) is action

    def test_parse_alias(self) -> None:
        assert ActionType.parse("venus_repay") is ActionType.REPAY
        assert ActionType.parse("LP_WITHDRAW") is ActionType.WITHDRAW_LP


class TestDecision:
    def test_params_must_match_action(self) -> None:
        with pytest.raises(ValueError):
            Decision(
                action_type=ActionType.REPAY,
                should_act=True,
                urgency=Urgency.HIGH,
                reasoning="x",
                params=WithdrawLpParams(position_id="1", liquidity=1),
                source=DecisionSource.RULE,
            )

    def test_amount_and_token(self) -> None:
        d = Decision(
            action_type=ActionType.REPAY,
            should_act=True,
            urgency=Urgency.HIGH,
            reasoning="x",
            params=RepayParams(market=VUSDT, symbol="vUSDT", amount=12.5),
            source=DecisionSource.RULE,
        )
        assert d.amount == 12.5
        assert d.token == VUSDT

    def test_alert_has_no_amount(self) -> None:
        d = Decision(
            action_type=ActionType.ALERT_ONLY,
            should_act=False,
            urgency=Urgency.LOW,
            reasoning="x",
            params=AlertParams(),
            source=DecisionSource.DEFAULT,
        )
        assert d.amount == 0.0
        assert d.token == ""


class TestScanReport:
    def test_portfolio_totals(self) -> None:
        snapshot = make_snapshot(
            lending=make_lending(2.0, borrows=((VUSDT, "vUSDT", 100.0),)),
            wallet=make_wallet(("USDT", 50.0, 0.0, 0.0)),
            errors={"amm": "boom"},
        )
        report = ScanReport(
            address=snapshot.address,
            snapshot=snapshot,
            risk_score=calculate_risk_score(snapshot),
        )
        assert report.lending_net_usd == 100.0
        assert report.wallet_usd == 50.0
        assert report.total_value_usd == 150.0
        assert report.errors == {"amm": "boom"}
