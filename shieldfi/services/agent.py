"""Agent facade — the operator-facing surface over the scan pipeline."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from ..addresses import require_address
from ..advisors import OpenRouterAdvisor
from ..chains.evm import EvmClient, EvmProtectionGateway, EvmSigner
from ..config import AppConfig
from ..interfaces import AuditLog, Notifier, RuleStore
from ..ledger import InMemoryAuditLog, InMemoryRuleStore, OnChainAuditLog, OnChainRuleStore
from ..models import (
    ActiveMonitor,
    AuditRecord,
    Evaluation,
    MonitorStatus,
    RiskQuote,
    RiskScore,
    Rule,
    RuleType,
    ScanReport,
    utc_now,
)
from ..notifications import EmailNotifier, TelegramNotifier
from ..oracles import DexScreenerOracle
from ..protocols.pancakeswap import PancakeSwapAdapter
from ..protocols.venus import VenusAdapter
from ..protocols.wallet import WalletAdapter
from .alerts import AlertDispatcher
from .decision_engine import DecisionEngine
from .executor import ProtectionExecutor, reasoning_digest
from .monitor import Monitor
from .risk_scorer import calculate_risk_score
from .snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


def make_rescorer(snapshot_service: SnapshotService):
    """Async callable that scores a fresh snapshot of an address."""

    async def rescore(address: str) -> RiskScore:
        return calculate_risk_score(await snapshot_service.fetch(address))

    return rescore


class ShieldAgent:
    """On-demand scans, monitoring control, rules and history."""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        engine: DecisionEngine,
        monitor: Monitor,
        rule_store: RuleStore,
        audit_log: AuditLog | None = None,
        risk_cache_seconds: float = 60.0,
        chain_client: EvmClient | None = None,
    ) -> None:
        self.snapshot_service = snapshot_service
        self.engine = engine
        self.monitor = monitor
        self.rule_store = rule_store
        self.audit_log = audit_log
        self.risk_cache_seconds = risk_cache_seconds
        self.chain_client = chain_client

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @classmethod
    async def from_config(cls, cfg: AppConfig) -> ShieldAgent:
        """Build every collaborator from configuration."""
        client = EvmClient(cfg.chain)
        signer = (
            EvmSigner(client, cfg.chain.private_key, receipt_timeout=cfg.chain.receipt_timeout)
            if cfg.chain.private_key
            else None
        )
        if signer is None:
            logger.warning("No private key configured; protective actions cannot be sent")

        oracle = DexScreenerOracle(cfg.market_data)
        snapshot_service = SnapshotService(
            lending=VenusAdapter(client, cfg.lending) if cfg.lending.comptroller else None,
            amm=PancakeSwapAdapter(client, cfg.amm) if cfg.amm.position_manager else None,
            wallet=WalletAdapter(client, oracle, cfg.market_data),
            call_timeout=cfg.monitor.call_timeout_seconds,
        )

        advisor = None
        if cfg.advisor.enabled and cfg.advisor.api_key:
            advisor = OpenRouterAdvisor(cfg.advisor)
        engine = DecisionEngine(
            advisor, min_ai_score=cfg.advisor.min_score, timeout=cfg.advisor.timeout
        )

        rule_store: RuleStore
        if cfg.ledger.rules_address:
            rule_store = OnChainRuleStore(client, cfg.ledger.rules_address)
        else:
            rule_store = InMemoryRuleStore()
            for wallet in cfg.wallets:
                for rule in wallet.rules:
                    await rule_store.create_rule(
                        wallet.address,
                        rule.type,
                        rule.threshold_bps,
                        auto_execute=rule.auto_execute,
                        description=rule.description,
                    )

        audit_log: AuditLog
        if cfg.ledger.audit_log_address and signer is not None:
            audit_log = OnChainAuditLog(client, cfg.ledger.audit_log_address, signer)
        else:
            audit_log = InMemoryAuditLog()

        executor = ProtectionExecutor(
            EvmProtectionGateway(
                client,
                signer,
                native_market=cfg.lending.native_market,
                position_manager=cfg.amm.position_manager,
            ),
            audit_log,
            rescorer=make_rescorer(snapshot_service),
            call_timeout=cfg.chain.receipt_timeout + cfg.monitor.call_timeout_seconds,
        )
        monitor = Monitor(
            snapshot_service,
            engine,
            executor,
            rule_store,
            history_size=cfg.monitor.history_size,
            default_interval=cfg.monitor.scan_interval_seconds,
            scan_timeout=cfg.monitor.scan_timeout_seconds,
        )

        notifiers: list[Notifier] = []
        if cfg.notifications.telegram.enabled:
            notifiers.append(TelegramNotifier(cfg.notifications.telegram))
        if cfg.notifications.email.enabled:
            notifiers.append(EmailNotifier(cfg.notifications.email))
        if notifiers:
            labels = {w.address: w.label for w in cfg.wallets if w.label}
            monitor.subscribe(AlertDispatcher(notifiers, labels))

        return cls(
            snapshot_service,
            engine,
            monitor,
            rule_store,
            audit_log,
            risk_cache_seconds=cfg.monitor.risk_cache_seconds,
            chain_client=client,
        )

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    async def full_scan(self, address: str) -> ScanReport:
        """Snapshot and score *address*; partial reads are reported, not raised."""
        address = require_address(address)
        started = time.monotonic()
        snapshot = await self.snapshot_service.fetch(address)
        risk = calculate_risk_score(snapshot)
        return ScanReport(
            address=address,
            snapshot=snapshot,
            risk_score=risk,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    async def get_risk_score(self, address: str) -> RiskQuote:
        """Latest monitored score if fresh enough, otherwise a new scan."""
        address = require_address(address)
        latest = self.monitor.latest_scan(address)
        if latest is not None and latest.risk_score is not None:
            age = (utc_now() - latest.timestamp).total_seconds()
            if age < self.risk_cache_seconds:
                return RiskQuote(latest.risk_score, cached=True, cache_age_seconds=age)

        report = await self.full_scan(address)
        return RiskQuote(report.risk_score, cached=False)

    async def _active_rules(self, address: str) -> list[Rule]:
        try:
            return await self.rule_store.list_active_rules(address)
        except Exception as e:
            logger.warning("Could not fetch rules for %s: %s", address, e)
            return []

    async def evaluate_protection(
        self, address: str, rules: Sequence[Rule] | None = None
    ) -> Evaluation:
        """Decide what to do for *address* without executing anything."""
        report = await self.full_scan(address)
        if rules is None:
            active = await self._active_rules(report.address)
        else:
            active = list(rules)
        decision = await self.engine.evaluate(report.risk_score, report.snapshot, active)
        return Evaluation(scan=report, decision=decision, rules=tuple(active))

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def start_monitoring(
        self,
        address: str,
        interval: float | None = None,
        rules: Sequence[Rule] | None = None,
    ) -> MonitorStatus:
        return await self.monitor.start(address, interval, rules)

    async def stop_monitoring(self, address: str) -> MonitorStatus:
        return await self.monitor.stop(address)

    def active_monitors(self) -> list[ActiveMonitor]:
        return self.monitor.active_monitors()

    async def shutdown(self) -> None:
        await self.monitor.stop_all()
        await self.monitor.wait_idle()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def create_rule(
        self,
        address: str,
        rule_type: RuleType | str | int,
        threshold_bps: int,
        auto_execute: bool = False,
        description: str = "",
    ) -> Rule:
        address = require_address(address)
        return await self.rule_store.create_rule(
            address, rule_type, threshold_bps, auto_execute, description
        )

    async def list_rules(self, address: str) -> list[Rule]:
        return await self.rule_store.list_rules(require_address(address))

    async def toggle_rule(self, rule_id: str) -> Rule:
        return await self.rule_store.toggle_rule(rule_id)

    async def delete_rule(self, rule_id: str) -> None:
        await self.rule_store.delete_rule(rule_id)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _executed_from_history(self, address: str) -> list[AuditRecord]:
        records = []
        for scan in self.monitor.history(address, limit=self.monitor.history_size):
            result = scan.execution_result
            if result is None or not result.success or scan.decision is None:
                continue
            records.append(
                AuditRecord(
                    user=scan.address,
                    action_type=scan.decision.action_type,
                    risk_score_before=float(scan.risk_score.total) if scan.risk_score else 0.0,
                    risk_score_after=result.risk_score_after or 0.0,
                    amount_protected=scan.decision.amount,
                    reasoning=scan.decision.reasoning,
                    reasoning_digest=reasoning_digest(scan.decision.reasoning),
                    timestamp=scan.timestamp,
                    reference=result.audit_reference or result.tx_reference,
                )
            )
        return records

    async def get_action_history(self, address: str) -> list[AuditRecord]:
        address = require_address(address)
        if self.audit_log is None:
            return self._executed_from_history(address)
        try:
            return await self.audit_log.history(address)
        except Exception as e:
            logger.error("Error fetching action history for %s: %s", address, e)
            return self._executed_from_history(address)

    async def get_user_stats(self, address: str) -> dict[str, Any]:
        address = require_address(address)
        empty = {"action_count": 0, "total_amount_protected": 0.0, "avg_risk_reduction": 0.0}
        if self.audit_log is None:
            return empty
        try:
            return await self.audit_log.stats(address)
        except Exception as e:
            logger.error("Error fetching user stats for %s: %s", address, e)
            return empty

    async def health(self) -> dict[str, Any]:
        connected = None
        if self.chain_client is not None:
            try:
                connected = await asyncio.wait_for(self.chain_client.is_connected(), 10)
            except asyncio.TimeoutError:
                connected = False
        return {
            "chain_connected": connected,
            "active_monitors": len(self.monitor.active_monitors()),
            "advisor_configured": self.engine.advisor is not None,
            "timestamp": utc_now().isoformat(),
        }
