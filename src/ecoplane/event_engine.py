"""
Economic event engine.

Events perturb the economy for a while: price modifiers per category,
one-off stimulus payments, cycle shocks. The engine owns their lifecycle

    CREATED -> ACTIVE -> EXPIRED      (ends_at reached, on tick)
                      -> CANCELLED    (force_end)

and guarantees at most one ACTIVE event per modifier category. Active
events and the modifiers derived from them are published together as one
immutable object; readers (the pricing engine) grab the reference and
always see a complete set.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.random import Generator, default_rng

from ecoplane.components import event as ev
from ecoplane.components.cycle import EconomicCycle
from ecoplane.components.event import (
    EconomicEvent,
    EventModifier,
    EventStatistics,
    EventStatus,
    EventType,
)
from ecoplane.config import Config
from ecoplane.core.notifications import EventEnded, EventStarted, NotificationBus
from ecoplane.core.ports import Ledger
from ecoplane.logging import getLogger
from ecoplane.persistence import HistoryRecorder
from ecoplane.typing import Clock

if TYPE_CHECKING:
    from ecoplane.inflation import InflationEngine

__all__ = ["EventEngine"]

log = getLogger(__name__)

CYCLE_ADJUSTMENT = {
    EconomicCycle.DEPRESSION: 0.4,
    EconomicCycle.RECESSION: 0.2,
    EconomicCycle.STABLE: -0.1,
    EconomicCycle.GROWTH: 0.1,
    EconomicCycle.BOOM: 0.3,
    EconomicCycle.BUBBLE: 0.5,
}

CYCLE_EVENT = {
    EconomicCycle.DEPRESSION: EventType.GOVERNMENT_STIMULUS,
    EconomicCycle.RECESSION: EventType.TRADE_BOOM,
    EconomicCycle.STABLE: EventType.MARKET_DISCOVERY,
    EconomicCycle.GROWTH: EventType.INVESTMENT_OPPORTUNITY,
    EconomicCycle.BOOM: EventType.LUXURY_DEMAND,
    EconomicCycle.BUBBLE: EventType.MARKET_CORRECTION,
}

# chance that a bubble tick draws a black swan instead of a correction
BUBBLE_BLACK_SWAN = 0.1


@dataclass(slots=True, frozen=True)
class _Published:
    events: Mapping[str, EconomicEvent] = field(
        default_factory=lambda: MappingProxyType({})
    )
    modifiers: Mapping[str, EventModifier] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def of(cls, events: dict[str, EconomicEvent]) -> _Published:
        return cls(
            MappingProxyType(events),
            MappingProxyType(
                {cat: EventModifier.from_event(e) for cat, e in events.items()}
            ),
        )


class EventEngine:
    """
    Scheduler and registry of transient economic events.

    Parameters
    ----------
    config : Config
        ``event_*`` keys and ``event_templates``.
    bus : NotificationBus, optional
        Receives :class:`EventStarted` / :class:`EventEnded`.
    recorder : HistoryRecorder, optional
        Persists event start and end rows.
    ledger : Ledger, optional
        Credited by stimulus events.
    inflation : InflationEngine, optional
        Source of cycle, health and inflation signals and target of cycle
        shocks. Without it the engine assumes a neutral economy.
    rng : numpy.random.Generator, optional
        Randomness for start rolls; seeded from ``event_seed`` by default.
    clock : callable, optional
        Wall-clock source in seconds.
    """

    def __init__(
        self,
        config: Config,
        *,
        bus: NotificationBus | None = None,
        recorder: HistoryRecorder | None = None,
        ledger: Ledger | None = None,
        inflation: InflationEngine | None = None,
        rng: Generator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.inflation = inflation
        self._bus = bus
        self._recorder = recorder or HistoryRecorder()
        self._ledger = ledger
        self._rng = rng if rng is not None else default_rng(config.event_seed)
        self._clock: Clock = clock or time.time

        self._lock = threading.Lock()
        self._published = _Published()

        self._counts: Counter[EventType] = Counter()
        self._duration_sum: dict[EventType, float] = {}
        self._duration_n: Counter[EventType] = Counter()
        self._last_start_by_type: dict[EventType, float] = {}
        self._last_started_at: float | None = None
        self._quiet_ticks = 0
        self._seq = 0
        self.rejected = 0

    # scheduled work
    # ---------------------------------------------------------------------
    def tick(self) -> EconomicEvent | None:
        """
        Expire due events, then maybe start one.

        Returns the event started on this tick, if any.
        """
        now = self._clock()
        self._expire(now)

        cycle, health, inflation = self._signals()
        probability = self.event_probability(cycle, health, inflation, now)
        started = None
        if self._rng.random() < probability:
            started = self._start(
                self.select_event_type(cycle, health), trigger="cycle", now=now
            )

        if started is None:
            self._quiet_ticks += 1
            if self._quiet_ticks >= self.config.event_stagnation_ticks:
                kind = (
                    EventType.GOVERNMENT_STIMULUS if health < 0.5 else EventType.TRADE_BOOM
                )
                started = self._start(kind, trigger="anti-stagnation", now=now)
        if started is not None:
            self._quiet_ticks = 0

        log.debug(
            "Event tick: p=%.2f cycle=%s health=%.2f active=%d quiet=%d",
            probability,
            cycle.name,
            health,
            self.get_active_events_count(),
            self._quiet_ticks,
        )
        return started

    # triggering
    # ---------------------------------------------------------------------
    def start_event(
        self,
        event_type: EventType,
        duration: timedelta | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> EconomicEvent | None:
        """
        Start *event_type* now (administrative trigger).

        Per-type cooldowns do not apply, the one-event-per-category rule
        does. Returns the ACTIVE event, or None when rejected.
        """
        return self._start(
            event_type,
            trigger="manual",
            now=self._clock(),
            duration=duration,
            overrides=parameters,
            respect_cooldown=False,
        )

    def force_end(self, event_id: str) -> bool:
        """Cancel an active event; False when no active event has that id."""
        now = self._clock()
        with self._lock:
            events = dict(self._published.events)
            match = next((c for c, e in events.items() if e.id == event_id), None)
            if match is None:
                return False
            current = events.pop(match)
            ended = replace(
                current,
                status=EventStatus.CANCELLED,
                ends_at=max(now, current.started_at),
            )
            self._published = _Published.of(events)
            self._account_end(ended)
        log.info("Event %s cancelled", event_id)
        self._announce_end(ended)
        return True

    # reads
    # ---------------------------------------------------------------------
    def get_active_events(self) -> list[EconomicEvent]:
        return sorted(self._published.events.values(), key=lambda e: e.started_at)

    def get_active_events_count(self) -> int:
        return len(self._published.events)

    def get_event(self, event_id: str) -> EconomicEvent | None:
        return next(
            (e for e in self._published.events.values() if e.id == event_id), None
        )

    def active_modifiers(self) -> Mapping[str, EventModifier]:
        """Modifiers of the active events keyed by category (read-only)."""
        return self._published.modifiers

    def get_statistics(self) -> EventStatistics:
        with self._lock:
            averages = {
                t: self._duration_sum[t] / n for t, n in self._duration_n.items() if n
            }
            return EventStatistics(
                total_events=sum(self._counts.values()),
                event_counts=MappingProxyType(dict(self._counts)),
                average_durations=MappingProxyType(averages),
            )

    # decision rules
    # ---------------------------------------------------------------------
    def event_probability(
        self, cycle: EconomicCycle, health: float, inflation: float, now: float
    ) -> float:
        """
        Start probability for one tick:

            p = base + cycle adjustment
                + 0.3 if health < 0.3, + 0.2 if health > 0.9
                + 0.2 if |inflation| > 0.05
            p *= dampening   when the last event started within the gap
        """
        cfg = self.config
        p = cfg.event_base_probability + CYCLE_ADJUSTMENT[cycle]
        if health < 0.3:
            p += 0.3
        elif health > 0.9:
            p += 0.2
        if abs(inflation) > 0.05:
            p += 0.2
        if (
            self._last_started_at is not None
            and now - self._last_started_at < cfg.event_min_gap_minutes * 60.0
        ):
            p *= cfg.event_recent_dampening
        return float(np.clip(p, 0.0, 1.0))

    def select_event_type(self, cycle: EconomicCycle, health: float) -> EventType:
        """Relief events in a weak economy, otherwise the cycle's signature event."""
        if health < 0.4:
            if self._rng.random() < 0.5:
                return EventType.GOVERNMENT_STIMULUS
            return EventType.TRADE_BOOM
        if cycle is EconomicCycle.BUBBLE and self._rng.random() < BUBBLE_BLACK_SWAN:
            return EventType.BLACK_SWAN_EVENT
        return CYCLE_EVENT[cycle]

    @staticmethod
    def duration_scale(health: float) -> float:
        if health < 0.4:
            return 0.7
        if health > 0.8:
            return 1.3
        return 1.0

    def cooldown_remaining(self, event_type: EventType, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        last = self._last_start_by_type.get(event_type)
        if last is None:
            return 0.0
        return max(0.0, last + self.config.event_cooldown_hours * 3600.0 - now)

    # helpers
    # ---------------------------------------------------------------------
    def _signals(self) -> tuple[EconomicCycle, float, float]:
        if self.inflation is None:
            return EconomicCycle.STABLE, 0.5, 0.0
        return (
            self.inflation.get_current_cycle(),
            self.inflation.get_economic_health(),
            self.inflation.get_inflation_rate(),
        )

    def _next_id(self, event_type: EventType, now: float) -> str:
        self._seq += 1
        return f"{event_type.name}_{int(now * 1000)}_{self._seq}"

    def _parameters(
        self, event_type: EventType, overrides: Mapping[str, Any] | None
    ) -> dict[str, Any] | None:
        template = self.config.event_templates.get(event_type.name)
        if template is None:
            return None
        params: dict[str, Any] = {
            ev.CATEGORY: template["category"],
            ev.INTENSITY: float(template.get("intensity", 0.5)),
            ev.BUY_DELTA: float(template.get("buy_delta", 0.0)),
            ev.SELL_DELTA: float(template.get("sell_delta", 0.0)),
        }
        if template.get("items"):
            params[ev.ITEMS] = tuple(template["items"])
        if template.get("stimulus_per_actor"):
            params[ev.STIMULUS] = float(template["stimulus_per_actor"])
        if template.get("shock_cycle"):
            params[ev.SHOCK_CYCLE] = template["shock_cycle"]
        for key, value in (overrides or {}).items():
            key = key if key.startswith("metrics.") else f"metrics.{key}"
            params[key] = tuple(value) if isinstance(value, list) else value
        return params

    def _start(
        self,
        event_type: EventType,
        *,
        trigger: str,
        now: float,
        duration: timedelta | None = None,
        overrides: Mapping[str, Any] | None = None,
        respect_cooldown: bool = True,
    ) -> EconomicEvent | None:
        params = self._parameters(event_type, overrides)
        if params is None:
            log.warning("No template for event type %s; not started", event_type.name)
            return None
        category = str(params[ev.CATEGORY])

        if duration is not None:
            seconds = duration.total_seconds()
        else:
            template = self.config.event_templates[event_type.name]
            _, health, _ = self._signals()
            seconds = (
                float(template.get("duration_minutes", 0))
                * 60.0
                * self.duration_scale(health)
            )

        with self._lock:
            holder = self._published.events.get(category)
            if holder is not None:
                self.rejected += 1
                log.warning(
                    "Event %s rejected: category '%s' held by %s",
                    event_type.name,
                    category,
                    holder.id,
                )
                return None
            if respect_cooldown and self.cooldown_remaining(event_type, now) > 0:
                log.debug("Event %s on cooldown; not started", event_type.name)
                return None

            created = EconomicEvent(
                id=self._next_id(event_type, now),
                type=event_type,
                started_at=now,
                ends_at=now + seconds if seconds > 0 else None,
                parameters=params,
            )
            active = replace(created, status=EventStatus.ACTIVE)
            events = dict(self._published.events)
            events[category] = active
            self._published = _Published.of(events)

            self._counts[event_type] += 1
            self._last_start_by_type[event_type] = now
            self._last_started_at = now

        log.info(
            "Event started: %s [%s] category=%s (%s)%s",
            event_type.display_name,
            active.id,
            category,
            trigger,
            "" if active.ends_at is None else f" for {seconds / 60.0:.0f} min",
        )
        self._recorder.record_event_start(active)
        self._apply_effects(active)
        if self._bus is not None:
            self._bus.publish(EventStarted(active))
        return active

    def _apply_effects(self, event: EconomicEvent) -> None:
        amount = float(event.parameters.get(ev.STIMULUS, 0.0))
        if amount > 0 and self._ledger is not None:
            try:
                actors = [actor for actor, _ in self._ledger.get_all_balances()]
                for actor in actors:
                    self._ledger.apply_delta(actor, amount)
            except Exception:
                log.exception("Stimulus payment of %s failed", event.id)
            else:
                log.info("Stimulus %s paid %.2f to %d actor(s)", event.id, amount, len(actors))

        shock = event.parameters.get(ev.SHOCK_CYCLE)
        if shock and self.inflation is not None:
            self.inflation.force_cycle(EconomicCycle[shock], reason=event.type.display_name)

    def _expire(self, now: float) -> list[EconomicEvent]:
        with self._lock:
            events = dict(self._published.events)
            due = [
                c for c, e in events.items() if e.ends_at is not None and e.ends_at <= now
            ]
            if not due:
                return []
            ended = [replace(events.pop(c), status=EventStatus.EXPIRED) for c in due]
            self._published = _Published.of(events)
            for event in ended:
                self._account_end(event)
        for event in ended:
            log.info("Event expired: %s [%s]", event.type.display_name, event.id)
            self._announce_end(event)
        return ended

    def _account_end(self, event: EconomicEvent) -> None:
        if event.ends_at is None:
            return
        minutes = (event.ends_at - event.started_at) / 60.0
        self._duration_sum[event.type] = self._duration_sum.get(event.type, 0.0) + minutes
        self._duration_n[event.type] += 1

    def _announce_end(self, event: EconomicEvent) -> None:
        self._recorder.record_event_end(event)
        if self._bus is not None:
            self._bus.publish(EventEnded(event))

    def reconfigure(self, config: Config) -> None:
        self.config = config
