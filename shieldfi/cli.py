"""Command-line interface for the ShieldFi protection agent."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import AppConfig, load_config
from .errors import ShieldError
from .logging_setup import configure_logging
from .models import AuditRecord, Evaluation, RiskScore, Rule, ScanReport
from .services import ShieldAgent

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="shieldfi",
        description="DeFi position risk monitor and protection agent",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("scan", "Snapshot and score an address"),
        ("risk", "Risk score (cached from monitoring when fresh)"),
        ("evaluate", "Show the protective decision without executing it"),
        ("history", "Protective actions taken for an address"),
        ("rules", "Protection rules configured for an address"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("address", help="Wallet address (0x...)")

    monitor_parser = sub.add_parser(
        "monitor", help="Watch every configured wallet until interrupted"
    )
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=float,
        default=None,
        help="Scan interval in seconds (overrides config)",
    )

    return parser


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_risk(risk: RiskScore) -> str:
    lines = [f"Risk score: {risk.total}/{risk.max_score} ({risk.level.value})"]
    for name, cat in risk.breakdown.categories().items():
        lines.append(f"  {name:<22} {cat.score:>2}/{cat.max_score:<2}  {cat.detail}")
    lines.append("Recommendations:")
    lines.extend(f"  - {r}" for r in risk.recommendations)
    return "\n".join(lines)


def format_scan(report: ScanReport) -> str:
    snap = report.snapshot
    lines = [
        f"Address: {report.address}  ({report.duration_ms} ms)",
        f"Portfolio: ${report.total_value_usd:,.2f} "
        f"(lending net ${report.lending_net_usd:,.2f}, wallet ${report.wallet_usd:,.2f})",
        f"Lending: HF {snap.lending.health_factor:.2f} ({snap.lending.liquidation_risk}), "
        f"{len(snap.lending.markets)} markets",
        f"LP positions: {len(snap.amm_positions)}",
        f"Holdings: {len(snap.wallet.holdings)}",
    ]
    for section, error in sorted(report.errors.items()):
        lines.append(f"! {section} read failed: {error}")
    lines.append(format_risk(report.risk_score))
    return "\n".join(lines)


def format_evaluation(evaluation: Evaluation) -> str:
    d = evaluation.decision
    return (
        f"{format_scan(evaluation.scan)}\n"
        f"Decision: {d.action_type.value} urgency={d.urgency.value} "
        f"source={d.source.value} should_act={d.should_act}\n"
        f"  {d.reasoning}"
    )


def format_rule(rule: Rule) -> str:
    state = "active" if rule.active else "inactive"
    auto = " auto" if rule.auto_execute else ""
    return (
        f"{rule.id}: {rule.rule_type.value} threshold={rule.threshold_bps}bps "
        f"[{state}{auto}] triggered={rule.trigger_count} {rule.description}".rstrip()
    )


def format_action(record: AuditRecord) -> str:
    return (
        f"{record.timestamp:%Y-%m-%d %H:%M:%S} {record.action_type.value} "
        f"risk {record.risk_score_before:g} -> {record.risk_score_after:g} "
        f"amount {record.amount_protected:g} {record.reference or ''}".rstrip()
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _monitor_wallets(agent: ShieldAgent, config: AppConfig, interval: float | None) -> None:
    if not config.wallets:
        logger.error("No wallets configured to monitor")
        return
    for wallet in config.wallets:
        status = await agent.start_monitoring(
            wallet.address, interval or wallet.interval_seconds
        )
        if not status.success:
            logger.error("Could not monitor %s: %s", wallet.label, status.error)
    try:
        await asyncio.Event().wait()
    finally:
        await agent.shutdown()


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    agent = await ShieldAgent.from_config(config)

    if args.command == "scan":
        print(format_scan(await agent.full_scan(args.address)))
    elif args.command == "risk":
        quote = await agent.get_risk_score(args.address)
        suffix = f" (cached, {quote.cache_age_seconds:.0f}s old)" if quote.cached else ""
        print(format_risk(quote.risk_score) + suffix)
    elif args.command == "evaluate":
        print(format_evaluation(await agent.evaluate_protection(args.address)))
    elif args.command == "history":
        actions = await agent.get_action_history(args.address)
        print("\n".join(format_action(a) for a in actions) or "No protective actions recorded.")
    elif args.command == "rules":
        rules = await agent.list_rules(args.address)
        print("\n".join(format_rule(r) for r in rules) or "No rules configured.")
    elif args.command == "monitor":
        await _monitor_wallets(agent, config, args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    except (ShieldError, FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
