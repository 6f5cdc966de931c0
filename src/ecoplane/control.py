# src/ecoplane/control.py
from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

# noinspection PyPackageRequirements
import yaml

from ecoplane import logging as eco_logging
from ecoplane.components.market_item import TradeSide
from ecoplane.config import Config, ConfigValidator
from ecoplane.core.notifications import EventEnded, EventStarted, NotificationBus
from ecoplane.core.ports import Ledger, QueryExecutor
from ecoplane.core.scheduler import Scheduler
from ecoplane.event_engine import EventEngine
from ecoplane.inflation import InflationEngine
from ecoplane.logging import getLogger
from ecoplane.market import MarketEngine
from ecoplane.persistence import HistoryRecorder, PriceRecord
from ecoplane.ratelimit import RateLimiter
from ecoplane.safemode import SafeModeBreaker
from ecoplane.typing import Clock

__all__ = ["ControlPlane", "load_config"]

log = getLogger(__name__)

# mapping-valued keys merged one level deep instead of replaced
_NESTED_KEYS = ("logging", "event_templates")

PROBE_SQL = "SELECT 1"


# helpers
# ---------------------------------------------------------------------------
def _read_yaml(source: str | Path | Mapping[str, Any] | None) -> dict[str, Any]:
    """Mapping sources are copied, paths parsed as YAML, None is empty."""
    if source is None:
        return {}
    if isinstance(source, Mapping):
        return dict(source)
    raw = yaml.safe_load(Path(source).read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise TypeError(
            f"top level of {source} must be a mapping, got {type(raw).__name__}"
        )
    return dict(raw)


def _package_defaults() -> dict[str, Any]:
    """Defaults shipped inside the package."""
    txt = resources.files("ecoplane").joinpath("defaults.yml").read_text()
    return yaml.safe_load(txt) or {}


def _merge(base: dict[str, Any], update: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in update.items():
        if (
            key in _NESTED_KEYS
            and isinstance(base.get(key), Mapping)
            and isinstance(value, Mapping)
        ):
            merged = dict(base[key])
            merged.update(value)
            base[key] = merged
        else:
            base[key] = value
    return base


def load_config(
    config: str | Path | Mapping[str, Any] | None = None, **overrides: Any
) -> Config:
    """
    Build a sanitized Config.

    Order of precedence (later overrides earlier):

        1. package defaults  (ecoplane/defaults.yml)
        2. *config*  (Path / str / Mapping / None)
        3. explicit keyword arguments (**overrides)

    Invalid values fall back to the package defaults with a warning.
    """
    defaults = _package_defaults()
    cfg_dict = _merge(dict(defaults), _read_yaml(config))
    cfg_dict = _merge(cfg_dict, overrides)
    return Config(**ConfigValidator.sanitize_config(cfg_dict, defaults))


# ControlPlane
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ControlPlane:
    """
    Facade owning every control-plane component and its background tasks.

    One instance per process; collaborators are passed in by the host at
    bootstrap. ``start`` launches the periodic tasks, ``shutdown`` stops
    them without leaving a policy action half-applied.
    """

    # configuration
    config: Config

    # collaborators
    ledger: Ledger
    bus: NotificationBus
    recorder: HistoryRecorder

    # components
    rate_limiter: RateLimiter
    safe_mode: SafeModeBreaker
    market: MarketEngine
    inflation: InflationEngine
    events: EventEngine

    # background work
    scheduler: Scheduler

    # Constructor
    # ---------------------------------------------------------------------
    @classmethod
    def init(
        cls,
        config: str | Path | Mapping[str, Any] | None = None,
        *,
        ledger: Ledger,
        query_executor: QueryExecutor | None = None,
        probe: Callable[[], Any] | None = None,
        bus: NotificationBus | None = None,
        clock: Clock | None = None,
        **overrides: Any,  # anything here wins last
    ) -> ControlPlane:
        """
        Build a ControlPlane.

        Parameters
        ----------
        config : str, Path, Mapping or None
            User configuration layered over the package defaults.
        ledger : Ledger
            Balance store.
        query_executor : QueryExecutor, optional
            Enables history persistence and, without an explicit *probe*,
            backs the safe-mode probe with ``SELECT 1``.
        probe : callable, optional
            Backend round trip used by the safe-mode breaker.
        bus : NotificationBus, optional
            Shared bus; a new one is created by default.
        clock : callable, optional
            Wall-clock source in seconds (tests pass a fake clock).
        **overrides
            Individual configuration keys.
        """
        cfg = load_config(config, **overrides)
        eco_logging.configure(cfg.logging)

        clock = clock or time.time
        bus = bus or NotificationBus()
        if probe is None and query_executor is not None:
            executor = query_executor

            def select_one() -> Any:
                return executor.execute_query(PROBE_SQL)

            probe = select_one

        safe_mode = SafeModeBreaker(cfg, probe=probe, bus=bus, clock=clock)
        recorder = HistoryRecorder(
            query_executor,
            on_error=safe_mode.record_critical_error,
            queue_size=cfg.history_queue_size,
            read_timeout=cfg.history_read_timeout_seconds,
            suspended=safe_mode.is_active,
            clock=clock,
        )
        rate_limiter = RateLimiter(lambda: plane.config.rate_limit_ops_per_second, clock)

        # the event engine is the modifier source of the market and needs the
        # inflation engine, which prices through the market: wire in two steps
        events = EventEngine(cfg, bus=bus, recorder=recorder, ledger=ledger, clock=clock)
        market = MarketEngine(
            cfg,
            bus=bus,
            recorder=recorder,
            modifier_source=events.active_modifiers,
            clock=clock,
        )
        inflation = InflationEngine(
            cfg,
            ledger,
            bus=bus,
            market=market,
            on_error=safe_mode.record_critical_error,
            clock=clock,
        )
        events.inflation = inflation

        plane = cls(
            config=cfg,
            ledger=ledger,
            bus=bus,
            recorder=recorder,
            rate_limiter=rate_limiter,
            safe_mode=safe_mode,
            market=market,
            inflation=inflation,
            events=events,
            scheduler=Scheduler(),
        )
        bus.subscribe(lambda _: market.refresh(), EventStarted, EventEnded)
        plane._register_tasks()
        log.info(
            "Control plane ready: %d item(s), %d event template(s)",
            len(market.items()),
            len(cfg.event_templates),
        )
        return plane

    def _register_tasks(self) -> None:
        cfg = lambda: self.config  # noqa: E731
        self.scheduler.add(
            "market-decay", lambda: cfg().market_decay_interval_seconds, self.market.decay
        )
        self.scheduler.add(
            "inflation-sample",
            lambda: cfg().inflation_sample_interval_seconds,
            self.inflation.sample_snapshot,
        )
        self.scheduler.add(
            "event-tick", lambda: cfg().event_tick_interval_seconds, self.events.tick
        )
        self.scheduler.add("rate-limit-purge", 60.0, self.rate_limiter.purge_stale)
        self.scheduler.add(
            "history-flush",
            lambda: cfg().history_flush_interval_seconds,
            self.recorder.flush,
        )

    # lifecycle
    # ---------------------------------------------------------------------
    def start(self) -> None:
        """Create history tables, start probing and the periodic tasks."""
        if self.recorder.enabled:
            self.recorder.ensure_schema()
        self.inflation.resume()
        self.safe_mode.initialize(self.scheduler)
        self.scheduler.start()

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """
        Stop every background task.

        Policy actions not yet started are deferred; one already running
        completes before its task thread is joined. Queued history rows are
        written once more unless the backend is degraded.
        """
        self.inflation.halt()
        degraded = self.safe_mode.is_active()
        self.safe_mode.shutdown()
        self.scheduler.stop(timeout)
        if not degraded:
            self.recorder.flush()
        self.recorder.close()
        log.info("Control plane shut down")

    def reload(
        self, config: str | Path | Mapping[str, Any] | None = None, **overrides: Any
    ) -> Config:
        """Re-read configuration and hand the new Config to every component."""
        cfg = load_config(config, **overrides)
        eco_logging.configure(cfg.logging)
        self.config = cfg
        self.safe_mode.reconfigure(cfg)
        self.recorder.read_timeout = cfg.history_read_timeout_seconds
        self.market.config = cfg
        self.inflation.reconfigure(cfg)
        self.inflation.reload_policy()
        self.events.reconfigure(cfg)
        log.info("Configuration reloaded")
        return cfg

    # entry points
    # ---------------------------------------------------------------------
    def record_trade(
        self, actor: str, item: str, side: TradeSide | str, quantity: float
    ) -> float | None:
        """
        Rate-limited, safe-mode-gated trade.

        Returns the new price of the traded side, or None when the trade was
        rate limited or refused because safe mode is active.
        """
        side = TradeSide(side.lower()) if isinstance(side, str) else side
        if not self.rate_limiter.allow(actor, f"trade:{side.value}"):
            return None
        if self.safe_mode.is_active():
            log.debug("Trade by %s refused: safe mode active", actor)
            return None
        price = self.market.record_trade(item, side, quantity)
        self.inflation.record_transaction(price * quantity)
        return price

    # read surface
    # ---------------------------------------------------------------------
    def read_surface(self) -> dict[str, Any]:
        """Every produced reading, keyed by its lookup name."""
        snapshot = self.inflation.get_current_snapshot()
        stats = self.events.get_statistics()
        return {
            "cycle": self.inflation.get_current_cycle().name,
            "cycle_display": self.inflation.get_current_cycle().display_name,
            "health": self.inflation.get_economic_health(),
            "inflation_rate": self.inflation.get_inflation_rate(),
            "velocity": self.inflation.get_velocity_of_money(),
            "total_money": 0.0 if snapshot is None else snapshot.total_money,
            "average_balance": 0.0 if snapshot is None else snapshot.average_balance,
            "gini": 0.0 if snapshot is None else snapshot.gini_coefficient,
            "market_activity": self.market.market_activity(),
            "interest_rate": self.inflation.recommended_interest_rate(),
            "active_events": self.events.get_active_events_count(),
            "total_events": stats.total_events,
            "safe_mode": self.safe_mode.is_active(),
        }

    def lookup(self, name: str) -> Any:
        """
        Placeholder-style read.

        Plain names come from :meth:`read_surface`; ``item.<name>.<field>``
        reads ``buy``, ``sell``, ``trend``, ``volatility``, ``volume_24h`` or
        ``change_24h`` of one item; ``events.<TYPE>`` is the number of events
        of that type started so far.
        """
        parts = name.split(".")
        if parts[0] == "item" and len(parts) == 3:
            state = self.market.get_state(parts[1])
            fields = {
                "buy": state.buy_price,
                "sell": state.sell_price,
                "trend": self.market.get_trend(parts[1]).trend.name,
                "volatility": state.volatility,
                "volume_24h": state.volume_24h,
                "change_24h": state.price_change_24h,
            }
            if parts[2] not in fields:
                raise KeyError(f"Unknown item field '{parts[2]}'")
            return fields[parts[2]]
        if parts[0] == "events" and len(parts) == 2:
            counts = self.events.get_statistics().event_counts
            return next((n for t, n in counts.items() if t.name == parts[1]), 0)
        surface = self.read_surface()
        if name not in surface:
            raise KeyError(f"Unknown reading '{name}'")
        return surface[name]

    def price_history(self, item: str, days: float = 1.0) -> list[PriceRecord]:
        """Persisted prices of a registered *item* over the last *days*."""
        self.market.get_state(item)
        return self.recorder.price_history(item, days)
