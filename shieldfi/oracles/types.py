from dataclasses import dataclass


@dataclass(frozen=True)
class TokenMarket:
    """USD price and market depth for one token."""

    price_usd: float
    price_change_24h: float = 0.0
    liquidity_usd: float = 0.0
    volume_24h: float = 0.0
