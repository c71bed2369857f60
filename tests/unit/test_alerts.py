"""Unit tests for the alert dispatcher."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from conftest import WALLET
from shieldfi.models import (
    ActionExecuted,
    ActionType,
    CriticalRisk,
    ExecutionResult,
    MonitorStarted,
    PositionSnapshot,
    ScanComplete,
    ScanError,
    ScanRecord,
)
from shieldfi.services.alerts import AlertDispatcher
from shieldfi.services.decision_engine import default_decision
from shieldfi.services.risk_scorer import calculate_risk_score


@pytest.fixture()
def notifier() -> AsyncMock:
    mock = AsyncMock()
    mock.send_alert = AsyncMock(return_value=True)
    mock.send_log = AsyncMock(return_value=True)
    return mock


@pytest.fixture()
def dispatcher(notifier: AsyncMock) -> AlertDispatcher:
    return AlertDispatcher([notifier], labels={WALLET: "treasury"})


class TestAlertDispatcher:
    @pytest.mark.asyncio
    async def test_critical_risk_sends_alert(
        self, dispatcher: AlertDispatcher, notifier: AsyncMock, risky_snapshot: PositionSnapshot
    ) -> None:
        risk = calculate_risk_score(risky_snapshot)
        decision = default_decision(risk, risky_snapshot)

        await dispatcher(CriticalRisk(WALLET, risk, decision))

        notifier.send_alert.assert_awaited_once()
        message = notifier.send_alert.call_args.args[0]
        assert notifier.send_alert.call_args.kwargs["subject"] == "🚨 CRITICAL: Position at risk!"
        assert "Risk 100/100 (CRITICAL)" in message
        assert "treasury" in message
        assert "Liquidation Proximity: 30/30" in message
        notifier.send_log.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_complete_is_silent_log(
        self, dispatcher: AlertDispatcher, notifier: AsyncMock, healthy_snapshot: PositionSnapshot
    ) -> None:
        risk = calculate_risk_score(healthy_snapshot)
        record = ScanRecord(
            timestamp=datetime.now(timezone.utc),
            address=WALLET,
            risk_score=risk,
            positions=healthy_snapshot,
            decision=default_decision(risk, healthy_snapshot),
        )

        await dispatcher(ScanComplete(record))

        notifier.send_log.assert_awaited_once()
        assert notifier.send_log.call_args.kwargs["silent"] is True
        assert "10/100 SAFE" in notifier.send_log.call_args.args[0]
        notifier.send_alert.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_error_is_loud_log(
        self, dispatcher: AlertDispatcher, notifier: AsyncMock
    ) -> None:
        await dispatcher(ScanError(WALLET, datetime.now(timezone.utc), "rpc down"))

        assert notifier.send_log.call_args.kwargs["silent"] is False
        assert "Scan failed for treasury: rpc down" in notifier.send_log.call_args.args[0]

    @pytest.mark.asyncio
    async def test_manual_review_action(
        self, dispatcher: AlertDispatcher, notifier: AsyncMock, risky_snapshot: PositionSnapshot
    ) -> None:
        risk = calculate_risk_score(risky_snapshot)
        decision = default_decision(risk, risky_snapshot)
        result = ExecutionResult(
            action=ActionType.EMERGENCY_EXIT,
            attempted=False,
            success=False,
            requires_manual_review=True,
        )

        await dispatcher(ActionExecuted(WALLET, decision, result))

        message = notifier.send_alert.call_args.args[0]
        assert "Manual confirmation required" in message

    @pytest.mark.asyncio
    async def test_lifecycle_events_not_forwarded(
        self, dispatcher: AlertDispatcher, notifier: AsyncMock
    ) -> None:
        await dispatcher(MonitorStarted(WALLET, 30.0))
        notifier.send_alert.assert_not_called()
        notifier.send_log.assert_not_called()

    @pytest.mark.asyncio
    async def test_notifier_failure_swallowed(self, risky_snapshot: PositionSnapshot) -> None:
        broken = AsyncMock()
        broken.send_alert = AsyncMock(side_effect=RuntimeError("boom"))
        working = AsyncMock()
        working.send_alert = AsyncMock(return_value=True)
        dispatcher = AlertDispatcher([broken, working])
        risk = calculate_risk_score(risky_snapshot)

        await dispatcher(CriticalRisk(WALLET, risk, default_decision(risk, risky_snapshot)))

        working.send_alert.assert_awaited_once()
