"""
Typed notifications and the in-process notification bus.

The control plane only publishes; rendering, translation and delivery to
players belong to whoever subscribes. Subscribers are registered on an
explicit :class:`NotificationBus` instance passed to each component, so
there is no global listener registry.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from ecoplane.components.cycle import EconomicCycle
from ecoplane.components.event import EconomicEvent
from ecoplane.logging import getLogger

log = getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CycleChanged:
    old: EconomicCycle
    new: EconomicCycle
    forced: bool
    at: float


@dataclass(slots=True, frozen=True)
class PriceChanged:
    item: str
    old_buy: float
    new_buy: float
    old_sell: float
    new_sell: float
    volatility: float
    at: float

    @property
    def change_percent(self) -> float:
        """Largest relative move of the two sides, in percent."""
        buy = (self.new_buy - self.old_buy) / self.old_buy if self.old_buy else 0.0
        sell = (self.new_sell - self.old_sell) / self.old_sell if self.old_sell else 0.0
        return max(abs(buy), abs(sell)) * 100.0


@dataclass(slots=True, frozen=True)
class WealthTaxApplied:
    rate: float
    threshold: float
    affected_accounts: int
    collected: float
    reason: str
    at: float


@dataclass(slots=True, frozen=True)
class EventStarted:
    event: EconomicEvent


@dataclass(slots=True, frozen=True)
class EventEnded:
    event: EconomicEvent


@dataclass(slots=True, frozen=True)
class SafeModeChanged:
    active: bool
    reason: str
    at: float


Notification = Union[
    CycleChanged,
    PriceChanged,
    WealthTaxApplied,
    EventStarted,
    EventEnded,
    SafeModeChanged,
]

Subscriber = Callable[[Notification], None]


class NotificationBus:
    """
    Synchronous publish/subscribe channel for control-plane notifications.

    Examples
    --------
    >>> bus = NotificationBus()
    >>> seen = []
    >>> unsubscribe = bus.subscribe(seen.append, CycleChanged)
    >>> bus.publish(CycleChanged(EconomicCycle.STABLE, EconomicCycle.GROWTH, False, 0.0))
    >>> len(seen)
    1
    >>> unsubscribe()

    Notes
    -----
    A subscriber that raises is logged and skipped; the publisher and the
    remaining subscribers are unaffected.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: tuple[tuple[Subscriber, tuple[type, ...]], ...] = ()

    def subscribe(self, callback: Subscriber, *kinds: type) -> Callable[[], None]:
        """
        Register *callback* for the given notification classes.

        With no *kinds* the callback receives every notification. Returns a
        zero-argument function that removes the subscription.
        """
        entry = (callback, tuple(kinds))
        with self._lock:
            self._subscribers = self._subscribers + (entry,)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers = tuple(s for s in self._subscribers if s is not entry)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        for callback, kinds in self._subscribers:
            if kinds and not isinstance(notification, kinds):
                continue
            try:
                callback(notification)
            except Exception:
                log.exception(
                    "Subscriber %r failed on %s", callback, type(notification).__name__
                )

    def __len__(self) -> int:
        return len(self._subscribers)
