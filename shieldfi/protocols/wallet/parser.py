"""Portfolio composition — no I/O."""
from __future__ import annotations

from collections.abc import Iterable

from ...models import Holding, WalletState


def build_wallet_state(holdings: Iterable[Holding]) -> WalletState:
    """Sort by USD value, fill in portfolio percentages and concentration."""
    items = [h for h in holdings if h.balance > 0]
    total = sum(h.usd_value for h in items)

    weighted = sorted(
        (
            Holding(
                symbol=h.symbol,
                address=h.address,
                balance=h.balance,
                price_usd=h.price_usd,
                usd_value=h.usd_value,
                price_change_24h=h.price_change_24h,
                liquidity_usd=h.liquidity_usd,
                percentage=round(h.usd_value / total * 100, 2) if total > 0 else 0.0,
                is_native=h.is_native,
            )
            for h in items
        ),
        key=lambda h: h.usd_value,
        reverse=True,
    )

    if not weighted:
        return WalletState()
    top = weighted[0]
    return WalletState(
        holdings=tuple(weighted),
        total_value_usd=round(total, 2),
        max_concentration=top.percentage,
        max_concentration_token=top.symbol,
    )
