"""
ecoplane
========

Economic control plane for persistent multi-player virtual economies.

The package observes aggregate monetary state, classifies the economy into
a discrete cycle, prices tradable items from supply and demand, runs
transient economic events, applies stabilizing policy when health degrades
and protects itself with a backend circuit breaker and a per-actor rate
limiter.

Quick Start
-----------
>>> import ecoplane as ep
>>> ledger = ep.InMemoryLedger({"alice": 1_000.0, "bob": 50.0})
>>> plane = ep.ControlPlane.init(ledger=ledger)
>>> plane.record_trade("alice", "diamond", "buy", 4)
>>> plane.inflation.sample_snapshot()
>>> plane.lookup("gini")

Run the background tasks:

>>> plane.start()
>>> plane.shutdown()

Module Organization
-------------------
**Public API**:
  - `ecoplane.ControlPlane` : Facade and bootstrap
  - `ecoplane.MarketEngine`, `ecoplane.InflationEngine`,
    `ecoplane.EventEngine`, `ecoplane.SafeModeBreaker`,
    `ecoplane.RateLimiter` : Components, usable on their own
  - `ecoplane.logging` : Custom logging

**Internal Modules**:
  - `ecoplane.systems` : Pure numerical rules
  - `ecoplane.components` : Value types and state containers
  - `ecoplane.core` : Notifications, ports, scheduler
  - `ecoplane.config` : Configuration and validation

Notes
-----
- Configuration precedence: defaults.yml → user config → kwargs
- Invalid tuning values fall back to defaults; initialization never fails
  on them
"""

from __future__ import annotations

__version__: str = "0.1.0"

from . import logging  # noqa: E402 (circular‑safe)
from .components import (  # noqa: E402
    CycleForecast,
    EconomicCycle,
    EconomicEvent,
    EconomicSnapshot,
    EventStatistics,
    EventStatus,
    EventType,
    MarketItemState,
    MarketTrend,
    TradeSide,
    Trend,
    TrendingItem,
)
from .config import Config, ConfigValidator  # noqa: E402
from .core import NotificationBus, Scheduler  # noqa: E402
from .event_engine import EventEngine  # noqa: E402
from .inflation import InflationEngine  # noqa: E402
from .ledger import InMemoryLedger  # noqa: E402
from .market import MarketEngine  # noqa: E402
from .ratelimit import RateLimiter  # noqa: E402
from .safemode import SafeModeBreaker  # noqa: E402
from .control import ControlPlane, load_config  # noqa: E402

__all__ = [
    "__version__",
    "ControlPlane",
    "load_config",
    # Components
    "EventEngine",
    "InflationEngine",
    "MarketEngine",
    "RateLimiter",
    "SafeModeBreaker",
    "Scheduler",
    "NotificationBus",
    "InMemoryLedger",
    # Configuration
    "Config",
    "ConfigValidator",
    # Value types
    "CycleForecast",
    "EconomicCycle",
    "EconomicEvent",
    "EconomicSnapshot",
    "EventStatistics",
    "EventStatus",
    "EventType",
    "MarketItemState",
    "MarketTrend",
    "TradeSide",
    "Trend",
    "TrendingItem",
    # Utilities
    "logging",
]
