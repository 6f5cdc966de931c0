# src/ecoplane/systems/pricing.py
"""
Trade impact, modifiers, clamping and trend rules for market prices.
"""
from __future__ import annotations

import math
from collections.abc import Callable, Iterable

from ecoplane.components.event import EventModifier
from ecoplane.components.market_item import TradeSide, Trend

ElasticityFunction = Callable[[float, float, float, float], float]
"""(quantity, baseline, elasticity, max_change) -> relative price impact."""


def log_elasticity(
    quantity: float, baseline: float, elasticity: float, max_change: float
) -> float:
    """
    Default trade impact, concave in the trade size:

        impact = min(max_change, elasticity · ln(1 + quantity / baseline))

    A trade the size of the rolling baseline moves the price by
    ``elasticity · ln 2``; very large trades saturate at *max_change*.
    """
    if quantity <= 0.0:
        return 0.0
    relative = quantity / max(baseline, 1e-9)
    return min(max_change, elasticity * math.log1p(relative))


def linear_elasticity(
    quantity: float, baseline: float, elasticity: float, max_change: float
) -> float:
    """Alternative impact proportional to the relative trade size."""
    if quantity <= 0.0:
        return 0.0
    return min(max_change, elasticity * quantity / max(baseline, 1e-9))


def apply_trade_impact(
    buy: float, sell: float, side: TradeSide, impact: float, cross_ratio: float
) -> tuple[float, float]:
    """
    Move organic prices after a trade.

        BUY:   buy ← buy·(1 + impact)          sell ← sell·(1 + impact·cross)
        SELL:  sell ← sell·(1 − impact)        buy ← buy·(1 − impact·cross)

    The side being traded moves fully, the other side proportionally less.
    """
    if side is TradeSide.BUY:
        return buy * (1.0 + impact), sell * (1.0 + impact * cross_ratio)
    return buy * (1.0 - impact * cross_ratio), sell * (1.0 - impact)


def decay_toward(price: float, target: float, fraction: float) -> float:
    """Pull *price* a fixed *fraction* of the way back to *target*."""
    return price + (target - price) * fraction


def clamp_prices(
    buy: float, sell: float, floor: float, ceiling: float
) -> tuple[float, float]:
    """Clamp both sides into ``[floor, ceiling]`` and enforce ``sell ≤ buy``."""
    buy = min(ceiling, max(floor, buy))
    sell = min(buy, min(ceiling, max(floor, sell)))
    return buy, sell


def apply_modifiers(
    buy: float,
    sell: float,
    modifiers: Iterable[EventModifier],
    *,
    additive: bool,
    base_price: float,
) -> tuple[float, float]:
    """
    Layer event modifiers on top of a price pair.

    Multiplicative mode scales by ``1 + delta``; additive mode shifts by
    ``delta · base_price`` so deltas stay dimensionless in both modes.
    """
    for mod in modifiers:
        if additive:
            buy += mod.buy_delta * base_price
            sell += mod.sell_delta * base_price
        else:
            buy *= 1.0 + mod.buy_delta
            sell *= 1.0 + mod.sell_delta
    return buy, sell


def change_percent(current: float, reference: float) -> float:
    if reference <= 0.0:
        return 0.0
    return (current - reference) / reference * 100.0


def classify_trend(change: float, threshold_percent: float) -> Trend:
    """RISING above +threshold %, FALLING below −threshold %, else STABLE."""
    if change > threshold_percent:
        return Trend.RISING
    if change < -threshold_percent:
        return Trend.FALLING
    return Trend.STABLE


def reference_price(
    samples: Iterable[tuple[float, float]], since: float
) -> float | None:
    """
    Price in effect at time *since*.

    The latest sample taken at or before *since*; when every sample is newer
    the oldest one is used. ``None`` without samples.
    """
    oldest: float | None = None
    ref: float | None = None
    for ts, price in samples:
        if oldest is None:
            oldest = price
        if ts <= since:
            ref = price
        else:
            break
    return ref if ref is not None else oldest
