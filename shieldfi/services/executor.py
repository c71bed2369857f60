"""Protection executor — performs the side effect named by a Decision."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from eth_utils import keccak

from ..interfaces import AuditLog, ProtectionGateway
from ..models import (
    ZERO_ADDRESS,
    ActionType,
    AuditRecord,
    Decision,
    ExecutionResult,
    RepayParams,
    RiskScore,
    WithdrawLpParams,
)

logger = logging.getLogger(__name__)

# Used when no fresh post-action score can be computed
ESTIMATED_RISK_REDUCTION = 0.7

Rescorer = Callable[[str], Awaitable[RiskScore]]


def reasoning_digest(reasoning: str) -> str:
    """Keccak-256 of the reasoning text, 0x-prefixed hex."""
    return "0x" + keccak(text=reasoning).hex()


class ProtectionExecutor:
    """Execute protective actions and append audit records.

    EMERGENCY_EXIT and REBALANCE are never sent on-chain; they come back
    flagged for manual review. Nothing is retried.
    """

    def __init__(
        self,
        gateway: ProtectionGateway | None,
        audit_log: AuditLog | None = None,
        rescorer: Rescorer | None = None,
        call_timeout: float | None = 20.0,
    ) -> None:
        self.gateway = gateway
        self.audit_log = audit_log
        self.rescorer = rescorer
        self.call_timeout = call_timeout

    async def execute(
        self, address: str, decision: Decision, risk_score_before: float
    ) -> ExecutionResult:
        action = decision.action_type
        if not decision.should_act:
            return ExecutionResult(action=action, attempted=False, success=False)

        if action is ActionType.ALERT_ONLY:
            return ExecutionResult(action=action, attempted=False, success=True)

        if action in (ActionType.EMERGENCY_EXIT, ActionType.REBALANCE):
            logger.warning(
                "%s for %s requires manual confirmation: %s",
                action.value, address, decision.reasoning,
            )
            return ExecutionResult(
                action=action,
                attempted=False,
                success=False,
                requires_manual_review=True,
                error=f"{action.value} is not auto-executed; manual confirmation required",
            )

        if self.gateway is None:
            return ExecutionResult(
                action=action,
                attempted=False,
                success=False,
                error="No protection gateway configured",
            )

        if isinstance(decision.params, RepayParams):
            result = await self._repay(decision.params)
        elif isinstance(decision.params, WithdrawLpParams):
            result = await self._withdraw_lp(decision.params)
        else:
            return ExecutionResult(
                action=action, attempted=False, success=False,
                error=f"Unsupported action {action.value}",
            )

        if not result.success:
            return result

        score_after = await self._score_after(address, risk_score_before)
        audit_ref = await self._append_audit(
            address, decision, risk_score_before, score_after
        )
        return ExecutionResult(
            action=result.action,
            attempted=True,
            success=True,
            tx_reference=result.tx_reference,
            collect_tx_reference=result.collect_tx_reference,
            gas_used=result.gas_used,
            audit_reference=audit_ref,
            risk_score_after=score_after,
        )

    async def _call(self, coro: Awaitable):
        return await asyncio.wait_for(coro, self.call_timeout)

    async def _repay(self, params: RepayParams) -> ExecutionResult:
        if not params.market or params.amount <= 0:
            return ExecutionResult(
                action=ActionType.REPAY,
                attempted=False,
                success=False,
                error="Repay requires a market and a positive amount",
            )
        try:
            receipt = await self._call(self.gateway.repay(params.market, params.amount))
        except Exception as e:
            logger.error("Repay of %s %s failed: %s", params.amount, params.symbol, e)
            return ExecutionResult(
                action=ActionType.REPAY, attempted=True, success=False, error=str(e)
            )
        logger.info("Repaid %s %s (tx %s)", params.amount, params.symbol, receipt.tx_hash)
        return ExecutionResult(
            action=ActionType.REPAY,
            attempted=True,
            success=True,
            tx_reference=receipt.tx_hash,
            gas_used=receipt.gas_used,
        )

    async def _withdraw_lp(self, params: WithdrawLpParams) -> ExecutionResult:
        if not params.position_id or params.liquidity <= 0:
            return ExecutionResult(
                action=ActionType.WITHDRAW_LP,
                attempted=False,
                success=False,
                error="LP withdrawal requires a position id and positive liquidity",
            )
        try:
            decrease = await self._call(
                self.gateway.decrease_liquidity(params.position_id, params.liquidity)
            )
        except Exception as e:
            logger.error("decreaseLiquidity on #%s failed: %s", params.position_id, e)
            return ExecutionResult(
                action=ActionType.WITHDRAW_LP, attempted=True, success=False, error=str(e)
            )

        try:
            collect = await self._call(self.gateway.collect(params.position_id))
        except Exception as e:
            # Liquidity is already out of the pool; do not repeat the first leg.
            logger.error(
                "collect on #%s failed after decreaseLiquidity %s: %s",
                params.position_id, decrease.tx_hash, e,
            )
            return ExecutionResult(
                action=ActionType.WITHDRAW_LP,
                attempted=True,
                success=False,
                partial_failure=True,
                tx_reference=decrease.tx_hash,
                gas_used=decrease.gas_used,
                error=f"collect leg failed after liquidity was decreased: {e}",
            )

        logger.info(
            "Withdrew LP #%s (%s) in %s / %s",
            params.position_id, params.pair, decrease.tx_hash, collect.tx_hash,
        )
        return ExecutionResult(
            action=ActionType.WITHDRAW_LP,
            attempted=True,
            success=True,
            tx_reference=decrease.tx_hash,
            collect_tx_reference=collect.tx_hash,
            gas_used=decrease.gas_used + collect.gas_used,
        )

    async def _score_after(self, address: str, before: float) -> float:
        if self.rescorer is not None:
            try:
                fresh = await self._call(self.rescorer(address))
                return float(fresh.total)
            except Exception as e:
                logger.warning("Post-action rescoring of %s failed: %s", address, e)
        estimate = round(before * ESTIMATED_RISK_REDUCTION, 2)
        logger.info("Using estimated post-action risk score %s for %s", estimate, address)
        return estimate

    async def _append_audit(
        self,
        address: str,
        decision: Decision,
        before: float,
        after: float,
    ) -> str | None:
        if self.audit_log is None:
            return None
        record = AuditRecord(
            user=address,
            action_type=decision.action_type,
            risk_score_before=before,
            risk_score_after=after,
            amount_protected=decision.amount,
            reasoning=decision.reasoning,
            reasoning_digest=reasoning_digest(decision.reasoning),
            token_involved=decision.token or ZERO_ADDRESS,
        )
        try:
            return await self._call(self.audit_log.append(record))
        except Exception as e:
            logger.warning("Audit append for %s failed: %s", address, e)
            return None
