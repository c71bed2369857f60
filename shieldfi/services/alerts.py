"""Alert dispatcher — forwards monitor events to notification channels."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from ..addresses import short_address
from ..interfaces.notifier import Notifier
from ..models import (
    ActionExecuted,
    CriticalRisk,
    ElevatedRisk,
    MonitorStarted,
    MonitorStopped,
    RiskScore,
    ScanComplete,
    ScanError,
    ScanEvent,
)

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Monitor listener that turns scan events into alerts and log lines."""

    def __init__(
        self, notifiers: Sequence[Notifier], labels: dict[str, str] | None = None
    ) -> None:
        self._notifiers = list(notifiers)
        self._labels = {k.lower(): v for k, v in (labels or {}).items()}

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    def _label(self, address: str) -> str:
        return self._labels.get(address.lower()) or short_address(address)

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _breakdown_lines(risk: RiskScore) -> str:
        return "\n".join(
            f"  {name.replace('_', ' ').title()}: {c.score}/{c.max_score}"
            for name, c in risk.breakdown.categories().items()
        )

    def _build_risk_alert(self, event: CriticalRisk | ElevatedRisk, header: str) -> str:
        risk = event.risk_score
        recs = "\n".join(f"• {r}" for r in risk.recommendations)
        return (
            f"{header} Risk {risk.total}/100 ({risk.level.value})\n"
            f"\n"
            f"{self._label(event.address)}\n"
            f"\n"
            f"{self._breakdown_lines(risk)}\n"
            f"\n"
            f"Decision: {event.decision.action_type.value} "
            f"({event.decision.urgency.value}, {event.decision.source.value})\n"
            f"{event.decision.reasoning}\n"
            f"\n"
            f"{recs}\n"
            f"\n"
            f"Wallet: {short_address(event.address)}\n"
            f"{self._now_str()} UTC"
        )

    def _build_action_alert(self, event: ActionExecuted) -> str:
        result = event.result
        if result.success:
            status = "✅ Executed"
        elif result.requires_manual_review:
            status = "✋ Manual confirmation required"
        elif result.partial_failure:
            status = "⚠️ Partially executed"
        else:
            status = "❌ Failed"
        lines = [
            f"🛡️ {event.decision.action_type.value}: {status}",
            "",
            self._label(event.address),
            "",
            event.decision.reasoning,
        ]
        if result.tx_reference:
            lines.append(f"Tx: {result.tx_reference}")
        if result.collect_tx_reference:
            lines.append(f"Collect tx: {result.collect_tx_reference}")
        if result.error:
            lines.append(f"Error: {result.error}")
        if result.risk_score_after is not None:
            lines.append(f"Risk after: {result.risk_score_after:g}")
        lines += ["", f"{self._now_str()} UTC"]
        return "\n".join(lines)

    def _build_scan_log(self, event: ScanComplete) -> str:
        record = event.record
        risk = record.risk_score
        decision = record.decision
        return (
            f"📊 {self._label(record.address)} · "
            f"{risk.total}/100 {risk.level.value} · "
            f"{decision.action_type.value} ({decision.urgency.value})\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    async def __call__(self, event: ScanEvent) -> None:
        if isinstance(event, CriticalRisk):
            await self._send_alert(
                self._build_risk_alert(event, "🚨 CRITICAL"),
                subject="🚨 CRITICAL: Position at risk!",
            )
        elif isinstance(event, ElevatedRisk):
            await self._send_alert(
                self._build_risk_alert(event, "⚠️ ELEVATED"),
                subject="⚠️ WARNING: Elevated risk",
            )
        elif isinstance(event, ActionExecuted):
            await self._send_alert(
                self._build_action_alert(event),
                subject=f"🛡️ Protection action: {event.decision.action_type.value}",
            )
        elif isinstance(event, ScanComplete):
            await self._send_log(self._build_scan_log(event), silent=True)
        elif isinstance(event, ScanError):
            await self._send_log(
                f"❗ Scan failed for {self._label(event.address)}: {event.error}",
                silent=False,
            )
        elif isinstance(event, (MonitorStarted, MonitorStopped)):
            verb = "Started" if isinstance(event, MonitorStarted) else "Stopped"
            logger.debug("%s monitoring %s", verb, event.address)
