# src/ecoplane/components/event.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class EventType(Enum):
    """Closed set of economic event types: (display name, group)."""

    GOVERNMENT_STIMULUS = ("Government Stimulus", "Crisis Response")
    TRADE_BOOM = ("Trade Boom", "Economic Recovery")
    MARKET_DISCOVERY = ("Market Discovery", "Innovation")
    TECHNOLOGICAL_BREAKTHROUGH = ("Tech Breakthrough", "Innovation")
    INVESTMENT_OPPORTUNITY = ("Investment Opportunity", "Market")
    LUXURY_DEMAND = ("Luxury Demand", "Market")
    MARKET_CORRECTION = ("Market Correction", "Market Adjustment")
    RESOURCE_SHORTAGE = ("Resource Shortage", "Supply Chain")
    SEASONAL_DEMAND = ("Seasonal Demand", "Natural Cycle")
    BLACK_SWAN_EVENT = ("Black Swan Event", "Crisis")

    def __init__(self, display_name: str, group: str) -> None:
        self.display_name = display_name
        self.group = group

    @property
    def is_positive(self) -> bool:
        """Whether the event is generally good news for players."""
        return self not in (
            EventType.MARKET_CORRECTION,
            EventType.RESOURCE_SHORTAGE,
            EventType.BLACK_SWAN_EVENT,
        )


class EventStatus(Enum):
    """Lifecycle: CREATED -> ACTIVE -> EXPIRED | CANCELLED."""

    CREATED = "created"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (EventStatus.EXPIRED, EventStatus.CANCELLED)


# parameter keys
CATEGORY = "metrics.category"
BUY_DELTA = "metrics.buy_delta"
SELL_DELTA = "metrics.sell_delta"
ITEMS = "metrics.items"
INTENSITY = "metrics.intensity"
STIMULUS = "metrics.stimulus_per_actor"
SHOCK_CYCLE = "metrics.shock_cycle"


@dataclass(slots=True, frozen=True)
class EconomicEvent:
    """
    Immutable record of one economic event.

    A status change produces a new record (``dataclasses.replace``); the
    event engine publishes records by swapping whole collections, so
    readers always see a fully formed event or none.
    """

    id: str
    type: EventType
    started_at: float
    ends_at: float | None  # None: active until explicitly ended
    parameters: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )
    status: EventStatus = EventStatus.CREATED

    def __post_init__(self) -> None:
        if not isinstance(self.parameters, MappingProxyType):
            object.__setattr__(
                self, "parameters", MappingProxyType(dict(self.parameters))
            )
        if self.ends_at is not None and self.ends_at < self.started_at:
            raise ValueError(
                f"Event {self.id!r} cannot end ({self.ends_at}) "
                f"before it starts ({self.started_at})"
            )

    @property
    def category(self) -> str:
        return str(self.parameters.get(CATEGORY, "market"))

    def remaining(self, now: float) -> float | None:
        """Seconds until expiry, ``None`` for indefinite events."""
        if self.ends_at is None:
            return None
        return max(0.0, self.ends_at - now)


@dataclass(slots=True, frozen=True)
class EventModifier:
    """Price perturbation derived from one active event."""

    event_id: str
    category: str
    buy_delta: float
    sell_delta: float
    items: frozenset[str] = frozenset()

    @classmethod
    def from_event(cls, event: EconomicEvent) -> EventModifier:
        p = event.parameters
        return cls(
            event_id=event.id,
            category=event.category,
            buy_delta=float(p.get(BUY_DELTA, 0.0)),
            sell_delta=float(p.get(SELL_DELTA, 0.0)),
            items=frozenset(p.get(ITEMS, ())),
        )


@dataclass(slots=True, frozen=True)
class EventStatistics:
    """Aggregate counters over every event started since boot."""

    total_events: int
    event_counts: Mapping[EventType, int]
    average_durations: Mapping[EventType, float]  # minutes, ended events only
