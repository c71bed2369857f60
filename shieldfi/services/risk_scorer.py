"""Risk scorer — folds a position snapshot into a 0-100 risk score.

Pure and deterministic: no I/O, no clock, no randomness. Each category is
scored by its own function so it can be exercised in isolation.
"""
from __future__ import annotations

from collections.abc import Sequence

from ..models import (
    NO_DEBT_HEALTH_FACTOR,
    AmmPosition,
    CategoryScore,
    LendingState,
    PositionSnapshot,
    RiskBreakdown,
    RiskLevel,
    RiskScore,
    WalletState,
)

LIQUIDATION_MAX = 30
IMPERMANENT_LOSS_MAX = 25
CONCENTRATION_MAX = 20
VOLATILITY_MAX = 15
LIQUIDITY_MAX = 10

HEALTHY_RECOMMENDATION = "Portfolio looks healthy. No immediate action needed."


def score_liquidation_proximity(health_factor: float) -> CategoryScore:
    if health_factor >= NO_DEBT_HEALTH_FACTOR:
        return CategoryScore(0, LIQUIDATION_MAX, "No active borrows")
    if health_factor > 2.0:
        score, label = 0, "safe"
    elif health_factor > 1.5:
        score, label = 10, "watch"
    elif health_factor > 1.2:
        score, label = 20, "elevated risk"
    else:
        score, label = 30, "CRITICAL - near liquidation"
    return CategoryScore(
        score, LIQUIDATION_MAX, f"Health factor {health_factor:.2f} ({label})"
    )


def score_impermanent_loss(positions: Sequence[AmmPosition]) -> CategoryScore:
    if not positions:
        return CategoryScore(0, IMPERMANENT_LOSS_MAX, "No LP positions found")

    max_il = max(p.impermanent_loss for p in positions)
    if max_il < 1:
        score, label = 0, "negligible"
    elif max_il < 3:
        score, label = 10, "moderate"
    elif max_il < 5:
        score, label = 18, "significant"
    else:
        score, label = 25, "HIGH"
    return CategoryScore(
        score, IMPERMANENT_LOSS_MAX, f"Max IL: {max_il:.2f}% ({label})"
    )


def score_concentration_risk(wallet: WalletState) -> CategoryScore:
    if not wallet.holdings:
        return CategoryScore(0, CONCENTRATION_MAX, "No holdings found")

    pct = wallet.max_concentration
    token = wallet.max_concentration_token
    if pct < 30:
        return CategoryScore(
            0, CONCENTRATION_MAX, f"Well diversified (max {pct:.1f}% in {token})"
        )
    if pct < 50:
        score, label = 10, "Moderate"
    elif pct < 70:
        score, label = 15, "High"
    else:
        score, label = 20, "Extreme"
    return CategoryScore(
        score, CONCENTRATION_MAX, f"{label} concentration ({pct:.1f}% in {token})"
    )


def score_volatility_exposure(wallet: WalletState) -> CategoryScore:
    """Score the portfolio-weighted average absolute 24h price change."""
    if not wallet.holdings:
        return CategoryScore(0, VOLATILITY_MAX, "No holdings found")

    weighted = 0.0
    total_weight = 0.0
    for holding in wallet.holdings:
        weighted += abs(holding.price_change_24h) * holding.percentage
        total_weight += holding.percentage
    avg = weighted / total_weight if total_weight > 0 else 0.0

    if avg < 2:
        score, label = 0, "Low"
    elif avg < 5:
        score, label = 5, "Moderate"
    elif avg < 10:
        score, label = 10, "High"
    else:
        score, label = 15, "Extreme"
    return CategoryScore(
        score,
        VOLATILITY_MAX,
        f"{label} volatility (weighted avg {avg:.1f}% 24h change)",
    )


def low_liquidity_exposure(wallet: WalletState) -> float:
    """Portfolio percentage sitting in thinly traded tokens.

    A liquidity depth of 0 means "unknown" and is never counted.
    """
    exposure = 0.0
    for holding in wallet.holdings:
        pct = holding.percentage
        depth = holding.liquidity_usd
        if depth <= 0:
            continue
        if pct > 10 and depth < 100_000:
            exposure += pct
        if pct > 5 and depth < 10_000:
            exposure += pct * 2
    return exposure


def score_liquidity_risk(wallet: WalletState) -> CategoryScore:
    if not wallet.holdings:
        return CategoryScore(0, LIQUIDITY_MAX, "No holdings found")

    exposure = low_liquidity_exposure(wallet)
    if exposure < 5:
        return CategoryScore(0, LIQUIDITY_MAX, "Good liquidity across holdings")
    if exposure < 15:
        score, label = 3, "Some"
    elif exposure < 30:
        score, label = 6, "Significant"
    else:
        score, label = 10, "High"
    return CategoryScore(
        score, LIQUIDITY_MAX, f"{label} low-liquidity exposure ({exposure:.1f}%)"
    )


def generate_recommendations(
    breakdown: RiskBreakdown,
    lending: LendingState,
    positions: Sequence[AmmPosition],
    wallet: WalletState,
) -> tuple[str, ...]:
    recs: list[str] = []

    if breakdown.liquidation_proximity.score >= 20:
        borrowed = ", ".join(m.symbol for m in lending.markets if m.borrow_balance > 0)
        recs.append(
            f"URGENT: Repay lending borrows ({borrowed}) or add collateral to "
            f"improve health factor from {lending.health_factor:.2f}"
        )
    elif breakdown.liquidation_proximity.score >= 10:
        recs.append(
            f"Monitor lending health factor ({lending.health_factor:.2f}). "
            "Consider partial repayment."
        )

    if breakdown.impermanent_loss.score >= 18:
        for pos in positions:
            if pos.impermanent_loss > 3:
                recs.append(
                    f"Consider withdrawing LP position #{pos.position_id} "
                    f"({pos.pair}): IL at {pos.impermanent_loss:.2f}%"
                )

    if breakdown.concentration_risk.score >= 15:
        recs.append(
            f"Diversify holdings: {wallet.max_concentration_token} is "
            f"{wallet.max_concentration:.1f}% of portfolio"
        )

    if breakdown.volatility_exposure.score >= 10:
        recs.append("High market volatility detected. Consider hedging with stablecoins.")

    if breakdown.liquidity_risk.score >= 6:
        recs.append(
            "Some holdings have low market liquidity. "
            "Exiting large positions may cause slippage."
        )

    if not recs:
        recs.append(HEALTHY_RECOMMENDATION)
    return tuple(recs)


def calculate_risk_score(snapshot: PositionSnapshot) -> RiskScore:
    """Score *snapshot* across the five risk categories."""
    breakdown = RiskBreakdown(
        liquidation_proximity=score_liquidation_proximity(snapshot.lending.health_factor),
        impermanent_loss=score_impermanent_loss(snapshot.amm_positions),
        concentration_risk=score_concentration_risk(snapshot.wallet),
        volatility_exposure=score_volatility_exposure(snapshot.wallet),
        liquidity_risk=score_liquidity_risk(snapshot.wallet),
    )
    total = breakdown.total
    return RiskScore(
        total=total,
        level=RiskLevel.for_score(total),
        breakdown=breakdown,
        recommendations=generate_recommendations(
            breakdown, snapshot.lending, snapshot.amm_positions, snapshot.wallet
        ),
    )
