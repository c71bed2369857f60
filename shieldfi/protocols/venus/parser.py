"""Pure math for Venus-style lending positions — no I/O."""
from __future__ import annotations

from collections.abc import Sequence

from ...models import NO_DEBT_HEALTH_FACTOR, MarketEntry

WAD = 10**18
APY_CAP = 999_999.0


def rate_to_apy(rate_per_block: int, blocks_per_year: int) -> float:
    """Compound a per-block rate (1e18 mantissa) into an annual percentage."""
    rate = rate_per_block / WAD
    try:
        apy = ((1 + rate) ** blocks_per_year - 1) * 100
    except OverflowError:
        return APY_CAP
    return min(apy, APY_CAP)


def health_factor(liquidity_usd: float, shortfall_usd: float, total_borrow_usd: float) -> float:
    """Collateral headroom as a ratio; 999 when nothing is borrowed.

    In shortfall the factor drops below 1 in proportion to the deficit.
    """
    if total_borrow_usd <= 0:
        return NO_DEBT_HEALTH_FACTOR
    if shortfall_usd > 0:
        return max(0.0, 1 - shortfall_usd / total_borrow_usd)
    return (total_borrow_usd + liquidity_usd) / total_borrow_usd


def liquidation_tier(hf: float) -> str:
    if hf >= NO_DEBT_HEALTH_FACTOR:
        return "NONE"
    if hf >= 2.0:
        return "LOW"
    if hf >= 1.5:
        return "MODERATE"
    if hf >= 1.2:
        return "HIGH"
    return "CRITICAL"


def parse_market(
    market: str,
    symbol: str,
    snapshot: Sequence[int],
    underlying_price: int,
    supply_rate: int,
    borrow_rate: int,
    blocks_per_year: int,
    decimals: int = 18,
) -> MarketEntry:
    """Build a MarketEntry from getAccountSnapshot and oracle output.

    ``snapshot`` is ``(error, vTokenBalance, borrowBalance, exchangeRateMantissa)``.
    The oracle price is scaled so that ``price * amount / 1e18`` is USD with
    ``amount`` in underlying base units, hence ``/ 10**(36 - decimals)``.
    """
    _, vtoken_balance, borrow_raw, exchange_rate = snapshot
    supply_balance = (vtoken_balance * exchange_rate // WAD) / 10**decimals
    borrow_balance = borrow_raw / 10**decimals
    price_usd = underlying_price / 10 ** (36 - decimals)

    return MarketEntry(
        market=market,
        symbol=symbol,
        supply_balance=supply_balance,
        borrow_balance=borrow_balance,
        supply_usd=supply_balance * price_usd,
        borrow_usd=borrow_balance * price_usd,
        price_usd=price_usd,
        supply_apy=rate_to_apy(supply_rate, blocks_per_year),
        borrow_apy=rate_to_apy(borrow_rate, blocks_per_year),
    )


def net_apy(markets: Sequence[MarketEntry]) -> float:
    total_supply = sum(m.supply_usd for m in markets)
    total_borrow = sum(m.borrow_usd for m in markets)
    if total_supply <= 0:
        return 0.0
    supply_apy = sum(m.supply_apy * m.supply_usd for m in markets) / max(total_supply, 1)
    borrow_apy = (
        sum(m.borrow_apy * m.borrow_usd for m in markets) / max(total_borrow, 1)
        if total_borrow > 0
        else 0.0
    )
    return supply_apy - borrow_apy * total_borrow / max(total_supply, 1)
