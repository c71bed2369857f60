"""Unit tests for CLI argument parsing and output formatting."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import WALLET, make_rule
from shieldfi.cli import build_parser, format_action, format_risk, format_rule, format_scan, main
from shieldfi.models import ActionType, AuditRecord, PositionSnapshot, RuleType, ScanReport
from shieldfi.services.risk_scorer import calculate_risk_score


class TestBuildParser:
    @pytest.mark.parametrize("command", ["scan", "risk", "evaluate", "history", "rules"])
    def test_address_commands(self, command: str) -> None:
        args = build_parser().parse_args([command, WALLET])
        assert args.command == command
        assert args.address == WALLET

    def test_address_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["scan"])

    def test_monitor_command_default_interval(self) -> None:
        args = build_parser().parse_args(["monitor"])
        assert args.command == "monitor"
        assert args.interval is None

    def test_monitor_command_custom_interval(self) -> None:
        args = build_parser().parse_args(["monitor", "10"])
        assert args.interval == 10.0

    def test_config_flag(self) -> None:
        args = build_parser().parse_args(["--config", "/tmp/c.yaml", "rules", WALLET])
        assert args.config == "/tmp/c.yaml"

    def test_log_level_flag(self) -> None:
        args = build_parser().parse_args(["--log-level", "DEBUG", "monitor"])
        assert args.log_level == "DEBUG"

    def test_no_command(self) -> None:
        args = build_parser().parse_args([])
        assert args.command is None


class TestFormatting:
    def test_format_risk(self, risky_snapshot: PositionSnapshot) -> None:
        text = format_risk(calculate_risk_score(risky_snapshot))
        assert text.startswith("Risk score: 100/100 (CRITICAL)")
        assert "liquidation_proximity" in text
        assert "Recommendations:" in text

    def test_format_scan_reports_partial_reads(self, healthy_snapshot: PositionSnapshot) -> None:
        snapshot = PositionSnapshot(
            address=WALLET,
            wallet=healthy_snapshot.wallet,
            errors={"lending": "rpc timeout"},
        )
        report = ScanReport(
            address=WALLET, snapshot=snapshot, risk_score=calculate_risk_score(snapshot)
        )
        text = format_scan(report)
        assert f"Address: {WALLET}" in text
        assert "Holdings: 3" in text
        assert "! lending read failed: rpc timeout" in text

    def test_format_rule(self) -> None:
        rule = make_rule(RuleType.HEALTH_FACTOR, 150)
        assert format_rule(rule) == "r1: HEALTH_FACTOR threshold=150bps [active auto] triggered=0"

    def test_format_inactive_rule(self) -> None:
        rule = make_rule(RuleType.CONCENTRATION_LIMIT, 5000, auto_execute=False, active=False)
        assert "[inactive]" in format_rule(rule)

    def test_format_action(self) -> None:
        record = AuditRecord(
            user=WALLET,
            action_type=ActionType.REPAY,
            risk_score_before=80.0,
            risk_score_after=40.0,
            amount_protected=250.0,
            reasoning="hf low",
            reasoning_digest="0x00",
            timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            reference="0xabc",
        )
        assert format_action(record) == (
            "2026-01-02 03:04:05 REPAY risk 80 -> 40 amount 250 0xabc"
        )


class TestMain:
    def test_no_command_exits_1(self) -> None:
        with patch("sys.argv", ["shieldfi"]):
            with pytest.raises(SystemExit) as exc:
                main()
        assert exc.value.code == 1

    def test_missing_config_exits_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("sys.argv", ["shieldfi", "rules", WALLET]):
            with patch("shieldfi.cli.configure_logging"):
                with patch(
                    "shieldfi.cli.load_config", side_effect=FileNotFoundError("no config.yaml")
                ):
                    with pytest.raises(SystemExit) as exc:
                        main()
        assert exc.value.code == 2
        assert "error: no config.yaml" in capsys.readouterr().err
