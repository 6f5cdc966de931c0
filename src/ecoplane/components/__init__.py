"""Value types and state containers shared by the engines."""

from ecoplane.components.cycle import EconomicCycle
from ecoplane.components.event import (
    EconomicEvent,
    EventModifier,
    EventStatistics,
    EventStatus,
    EventType,
)
from ecoplane.components.market_item import (
    MarketItemState,
    MarketTrend,
    TradeSide,
    Trend,
    TrendingItem,
)
from ecoplane.components.snapshot import CycleForecast, EconomicSnapshot, HealthSample

__all__ = [
    "CycleForecast",
    "EconomicCycle",
    "EconomicEvent",
    "EconomicSnapshot",
    "EventModifier",
    "EventStatistics",
    "EventStatus",
    "EventType",
    "HealthSample",
    "MarketItemState",
    "MarketTrend",
    "TradeSide",
    "Trend",
    "TrendingItem",
]
