"""Pure concentrated-liquidity math — no I/O."""
from __future__ import annotations

import math

Q96 = 2**96
TICK_BASE = 1.0001


def sqrt_price_x96_to_price(sqrt_price_x96: int, decimals0: int, decimals1: int) -> float:
    """Price of token0 in units of token1, adjusted for decimals."""
    sqrt_price = sqrt_price_x96 / Q96
    return sqrt_price * sqrt_price * 10 ** (decimals0 - decimals1)


def tick_to_price(tick: float) -> float:
    return TICK_BASE**tick


def amounts_from_liquidity(
    liquidity: int,
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    decimals0: int,
    decimals1: int,
) -> tuple[float, float]:
    """Token amounts represented by *liquidity* at *current_tick*.

    Below the range everything is token0, at or above it everything is token1.
    """
    liq = float(liquidity)
    sp_current = math.sqrt(tick_to_price(current_tick))
    sp_lower = math.sqrt(tick_to_price(tick_lower))
    sp_upper = math.sqrt(tick_to_price(tick_upper))

    amount0 = amount1 = 0.0
    if current_tick < tick_lower:
        amount0 = liq * (1 / sp_lower - 1 / sp_upper) / 10**decimals0
    elif current_tick >= tick_upper:
        amount1 = liq * (sp_upper - sp_lower) / 10**decimals1
    else:
        amount0 = liq * (1 / sp_current - 1 / sp_upper) / 10**decimals0
        amount1 = liq * (sp_current - sp_lower) / 10**decimals1
    return max(0.0, amount0), max(0.0, amount1)


def impermanent_loss(entry_price: float, current_price: float) -> float:
    """IL in percent (always non-negative) versus holding the two tokens."""
    if entry_price <= 0 or current_price <= 0:
        return 0.0
    ratio = current_price / entry_price
    return abs(2 * math.sqrt(ratio) / (1 + ratio) - 1) * 100


def estimated_impermanent_loss(tick_lower: int, tick_upper: int, current_tick: int) -> float:
    """IL assuming the position was opened at the middle of its range."""
    entry_tick = (tick_lower + tick_upper) / 2
    return impermanent_loss(tick_to_price(entry_tick), tick_to_price(current_tick))


def in_range(tick_lower: int, tick_upper: int, current_tick: int) -> bool:
    return tick_lower <= current_tick < tick_upper
