# src/ecoplane/components/market_item.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum


class TradeSide(Enum):
    """Direction of a trade from the player's point of view."""

    BUY = "buy"
    SELL = "sell"


class Trend(Enum):
    """Direction of an item's price over the trend window."""

    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


@dataclass(slots=True)
class MarketItemState:
    """
    Mutable per-item pricing state.

    ``organic_buy`` / ``organic_sell`` are the prices driven by trades and
    decay only; ``buy_price`` / ``sell_price`` are the effective prices after
    global factors and event modifiers, clamped to ``[floor, ceiling]``.
    """

    item: str
    category: str
    base_price: float
    floor: float
    ceiling: float

    # ── effective prices ─────────────────────────────────────────────────
    buy_price: float
    sell_price: float

    # ── organic prices ───────────────────────────────────────────────────
    organic_buy: float
    organic_sell: float

    # ── derived statistics ───────────────────────────────────────────────
    trend: Trend = Trend.STABLE
    volatility: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0  # percent

    # ── rolling state ────────────────────────────────────────────────────
    volume_baseline: float = 1.0
    last_trade_at: float | None = None
    # (timestamp, effective buy price), last market_history_size reprices
    samples: deque[tuple[float, float]] = field(default_factory=deque, repr=False)
    # (timestamp, quantity)
    trades: deque[tuple[float, float]] = field(default_factory=deque, repr=False)
    # (timestamp, effective buy price) at each price change; the first entry
    # is the price in effect at the start of the retention window
    day_prices: deque[tuple[float, float]] = field(default_factory=deque, repr=False)


@dataclass(slots=True, frozen=True)
class MarketTrend:
    """Trend reading for one item."""

    item: str
    trend: Trend
    change_percent: float
    volatility: float
    volume: float


@dataclass(slots=True, frozen=True)
class TrendingItem:
    """Entry of the trending-items ranking."""

    item: str
    buy_price: float
    sell_price: float
    volume_24h: float
    price_change_24h: float
