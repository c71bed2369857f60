"""Decision engine — turns a risk score into one recommended action.

Three stages, tried in order:

1. AI advisory (only for elevated scores and when an advisor is configured).
   Returns ``Decision | AdvisoryUnavailable``; never raises.
2. User rules, active ones in stored order, first match wins.
3. Built-in defaults, which are always advisory (``should_act=False``).
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from ..interfaces import AiAdvisor
from ..models import (
    NO_DEBT_HEALTH_FACTOR,
    ActionParams,
    ActionType,
    AdvisoryUnavailable,
    AlertParams,
    Decision,
    DecisionSource,
    EmergencyExitParams,
    PositionSnapshot,
    RebalanceParams,
    RepayParams,
    RiskScore,
    Rule,
    RuleType,
    Urgency,
    WithdrawLpParams,
)

logger = logging.getLogger(__name__)

RULE_REPAY_FRACTION = 0.25
DEFAULT_REPAY_FRACTION = 0.5
CRITICAL_HEALTH_FACTOR = 1.1
ALERT_SCORE = 60

_JSON_DECODER = json.JSONDecoder()

_PROMPT_TEMPLATE = """You are ShieldFi, an autonomous DeFi risk management agent on BNB Chain.

Analyze the following portfolio risk data and decide what protective action to take.

RISK SCORE: {total}/100 ({level})

RISK BREAKDOWN:
{breakdown}

LENDING POSITIONS:
{lending}

LP POSITIONS:
{amm}

WALLET:
{wallet}

Respond with a JSON object:
{{
  "shouldAct": true/false,
  "actionType": "REPAY" | "WITHDRAW_LP" | "EMERGENCY_EXIT" | "REBALANCE" | "ALERT_ONLY",
  "urgency": "LOW" | "MEDIUM" | "HIGH" | "CRITICAL",
  "reasoning": "1-2 sentences explaining your decision",
  "params": {{
    "tokenAddress": "address if applicable",
    "amount": "amount if applicable",
    "positionId": "LP position ID if applicable"
  }}
}}

ONLY respond with the JSON object, nothing else."""

_CATEGORY_LABELS = {
    "liquidation_proximity": "Liquidation Proximity",
    "impermanent_loss": "Impermanent Loss",
    "concentration_risk": "Concentration Risk",
    "volatility_exposure": "Volatility Exposure",
    "liquidity_risk": "Liquidity Risk",
}


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_prompt(risk: RiskScore, snapshot: PositionSnapshot) -> str:
    breakdown = "\n".join(
        f"- {_CATEGORY_LABELS[name]}: {cat.score}/{cat.max_score}: {cat.detail}"
        for name, cat in risk.breakdown.categories().items()
    )
    return _PROMPT_TEMPLATE.format(
        total=risk.total,
        level=risk.level.value,
        breakdown=breakdown,
        lending=_to_json(asdict(snapshot.lending)),
        amm=_to_json([asdict(p) for p in snapshot.amm_positions]),
        wallet=_to_json(asdict(snapshot.wallet)),
    )


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object embedded in *text*, if any.

    Decoding stops at the end of that object, so braces in trailing
    prose are ignored.
    """
    text = text or ""
    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = _JSON_DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def _ai_params(
    action_type: ActionType, raw: dict[str, Any], snapshot: PositionSnapshot
) -> ActionParams:
    """Build the typed payload for an AI recommendation; ValueError if unusable."""
    if action_type is ActionType.REPAY:
        market_address = str(raw.get("tokenAddress") or raw.get("market") or "")
        market = next(
            (m for m in snapshot.lending.markets if m.market.lower() == market_address.lower()),
            None,
        ) if market_address else snapshot.lending.largest_borrow()
        if market is None:
            raise ValueError(f"unknown lending market '{market_address}'")
        amount_raw = raw.get("amount")
        amount = float(amount_raw) if amount_raw not in (None, "") else 0.0
        return RepayParams(market=market.market, symbol=market.symbol, amount=amount)

    if action_type is ActionType.WITHDRAW_LP:
        position_id = str(raw.get("positionId") or "")
        position = next(
            (p for p in snapshot.amm_positions if p.position_id == position_id), None
        )
        if position is None:
            raise ValueError(f"unknown LP position '{position_id}'")
        return WithdrawLpParams(
            position_id=position.position_id,
            liquidity=position.liquidity,
            pair=position.pair,
        )

    if action_type is ActionType.EMERGENCY_EXIT:
        return EmergencyExitParams(token=str(raw.get("tokenAddress") or ""))

    if action_type is ActionType.REBALANCE:
        top = snapshot.wallet.top_holding
        return RebalanceParams(
            token=str(raw.get("tokenAddress") or (top.address if top else "")),
            symbol=snapshot.wallet.max_concentration_token,
            concentration=snapshot.wallet.max_concentration,
        )

    return AlertParams()


def parse_advice(text: str, snapshot: PositionSnapshot) -> Decision | AdvisoryUnavailable:
    """Turn a free-text advisor reply into a Decision."""
    data = extract_json_object(text)
    if data is None:
        return AdvisoryUnavailable("no JSON object in advisor reply")

    try:
        action_type = ActionType.parse(data.get("actionType") or "ALERT_ONLY")
        urgency = Urgency(str(data.get("urgency") or "LOW").upper())
        raw_params = data.get("params") or {}
        if not isinstance(raw_params, dict):
            raise ValueError("params is not an object")
        params = _ai_params(action_type, raw_params, snapshot)
    except (ValueError, TypeError) as e:
        return AdvisoryUnavailable(f"malformed advisor reply: {e}")

    return Decision(
        action_type=action_type,
        should_act=data.get("shouldAct") is True,
        urgency=urgency,
        reasoning=str(data.get("reasoning") or "AI evaluation completed"),
        params=params,
        source=DecisionSource.AI,
    )


# ---------------------------------------------------------------------------
# Rule stage
# ---------------------------------------------------------------------------


def _match_health_factor(rule: Rule, snapshot: PositionSnapshot) -> Decision | None:
    hf = snapshot.lending.health_factor
    if hf >= NO_DEBT_HEALTH_FACTOR or hf >= rule.threshold:
        return None
    market = snapshot.lending.largest_borrow()
    params = RepayParams(
        market=market.market if market else "",
        symbol=market.symbol if market else "",
        amount=market.borrow_balance * RULE_REPAY_FRACTION if market else 0.0,
    )
    return Decision(
        action_type=ActionType.REPAY,
        should_act=rule.auto_execute,
        urgency=Urgency.CRITICAL if hf < CRITICAL_HEALTH_FACTOR else Urgency.HIGH,
        reasoning=(
            f"Lending health factor ({hf:.2f}) is below threshold ({rule.threshold:.2f}). "
            "Initiating repayment to avoid liquidation."
        ),
        params=params,
        source=DecisionSource.RULE,
        rule_id=rule.id,
    )


def _match_il_threshold(rule: Rule, snapshot: PositionSnapshot) -> Decision | None:
    position = next(
        (p for p in snapshot.amm_positions if p.impermanent_loss > rule.threshold), None
    )
    if position is None:
        return None
    return Decision(
        action_type=ActionType.WITHDRAW_LP,
        should_act=rule.auto_execute,
        urgency=Urgency.CRITICAL if position.impermanent_loss > 10 else Urgency.HIGH,
        reasoning=(
            f"LP position #{position.position_id} ({position.pair}) has IL of "
            f"{position.impermanent_loss:.2f}% exceeding threshold of {rule.threshold:.2f}%."
        ),
        params=WithdrawLpParams(
            position_id=position.position_id,
            liquidity=position.liquidity,
            pair=position.pair,
        ),
        source=DecisionSource.RULE,
        rule_id=rule.id,
    )


def _match_portfolio_drop(
    rule: Rule, risk: RiskScore, snapshot: PositionSnapshot
) -> Decision | None:
    if risk.total < rule.threshold:
        return None
    top = snapshot.wallet.top_holding
    return Decision(
        action_type=ActionType.EMERGENCY_EXIT,
        should_act=rule.auto_execute,
        urgency=Urgency.CRITICAL,
        reasoning=(
            f"Risk score ({risk.total}) exceeds emergency threshold ({rule.threshold:g}). "
            "Initiating emergency exit to stablecoins."
        ),
        params=EmergencyExitParams(token=top.address if top else ""),
        source=DecisionSource.RULE,
        rule_id=rule.id,
    )


def _match_concentration(rule: Rule, snapshot: PositionSnapshot) -> Decision | None:
    wallet = snapshot.wallet
    if wallet.max_concentration <= rule.threshold:
        return None
    top = wallet.top_holding
    return Decision(
        action_type=ActionType.REBALANCE,
        should_act=rule.auto_execute,
        urgency=Urgency.HIGH if wallet.max_concentration > 80 else Urgency.MEDIUM,
        reasoning=(
            f"Portfolio concentration ({wallet.max_concentration:.1f}% in "
            f"{wallet.max_concentration_token}) exceeds limit ({rule.threshold:g}%). "
            "Recommend rebalancing."
        ),
        params=RebalanceParams(
            token=top.address if top else "",
            symbol=wallet.max_concentration_token,
            concentration=wallet.max_concentration,
        ),
        source=DecisionSource.RULE,
        rule_id=rule.id,
    )


def evaluate_rules(
    risk: RiskScore, snapshot: PositionSnapshot, rules: Sequence[Rule]
) -> Decision | None:
    """First active rule whose condition holds, in stored order."""
    for rule in rules:
        if not rule.active:
            continue
        if rule.rule_type is RuleType.HEALTH_FACTOR:
            decision = _match_health_factor(rule, snapshot)
        elif rule.rule_type is RuleType.IL_THRESHOLD:
            decision = _match_il_threshold(rule, snapshot)
        elif rule.rule_type is RuleType.PORTFOLIO_DROP:
            decision = _match_portfolio_drop(rule, risk, snapshot)
        elif rule.rule_type is RuleType.CONCENTRATION_LIMIT:
            decision = _match_concentration(rule, snapshot)
        else:
            # CUSTOM rules have no evaluator
            decision = None
        if decision is not None:
            return decision
    return None


def default_decision(risk: RiskScore, snapshot: PositionSnapshot) -> Decision:
    hf = snapshot.lending.health_factor
    if hf < CRITICAL_HEALTH_FACTOR:
        market = snapshot.lending.largest_borrow()
        return Decision(
            action_type=ActionType.REPAY,
            should_act=False,
            urgency=Urgency.CRITICAL,
            reasoning=(
                f"Lending health factor is critically low at {hf:.2f}. "
                "Immediate repayment recommended."
            ),
            params=RepayParams(
                market=market.market if market else "",
                symbol=market.symbol if market else "",
                amount=market.borrow_balance * DEFAULT_REPAY_FRACTION if market else 0.0,
            ),
            source=DecisionSource.DEFAULT,
        )

    if risk.total >= ALERT_SCORE:
        return Decision(
            action_type=ActionType.ALERT_ONLY,
            should_act=False,
            urgency=Urgency.HIGH,
            reasoning=(
                f"Risk score is elevated at {risk.total}/100. Multiple risk factors "
                "contributing. Review recommended."
            ),
            params=AlertParams(),
            source=DecisionSource.DEFAULT,
        )

    return Decision(
        action_type=ActionType.ALERT_ONLY,
        should_act=False,
        urgency=Urgency.LOW,
        reasoning=(
            "Portfolio is within acceptable risk parameters. "
            f"Risk score: {risk.total}/100."
        ),
        params=AlertParams(),
        source=DecisionSource.DEFAULT,
    )


class DecisionEngine:
    """AI advisory, then user rules, then defaults."""

    def __init__(
        self,
        advisor: AiAdvisor | None = None,
        min_ai_score: int = 25,
        timeout: float | None = None,
    ) -> None:
        self.advisor = advisor
        self.min_ai_score = min_ai_score
        self.timeout = timeout

    async def advise(
        self, risk: RiskScore, snapshot: PositionSnapshot
    ) -> Decision | AdvisoryUnavailable:
        if self.advisor is None:
            return AdvisoryUnavailable("no advisor configured")
        if risk.total < self.min_ai_score:
            return AdvisoryUnavailable(
                f"risk score {risk.total} below advisory threshold {self.min_ai_score}"
            )

        prompt = build_prompt(risk, snapshot)
        try:
            reply = await asyncio.wait_for(self.advisor.complete(prompt), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("AI advisor timed out after %ss", self.timeout)
            return AdvisoryUnavailable("advisor timed out")
        except Exception as e:
            logger.warning("AI advisor request failed: %s", e)
            return AdvisoryUnavailable(f"advisor request failed: {e}")

        return parse_advice(reply, snapshot)

    async def evaluate(
        self,
        risk: RiskScore,
        snapshot: PositionSnapshot,
        rules: Sequence[Rule] = (),
    ) -> Decision:
        advice = await self.advise(risk, snapshot)
        if isinstance(advice, Decision):
            logger.info(
                "AI decision for %s: %s (%s)",
                snapshot.address, advice.action_type.value, advice.urgency.value,
            )
            return advice
        logger.debug("AI advisory unavailable for %s: %s", snapshot.address, advice.reason)

        decision = evaluate_rules(risk, snapshot, rules)
        if decision is None:
            decision = default_decision(risk, snapshot)
        logger.info(
            "%s decision for %s: %s (%s)",
            decision.source.value.capitalize(), snapshot.address,
            decision.action_type.value, decision.urgency.value,
        )
        return decision
