"""Infrastructure shared by the engines: notifications, ports, scheduling."""

from ecoplane.core.notifications import (
    CycleChanged,
    EventEnded,
    EventStarted,
    Notification,
    NotificationBus,
    PriceChanged,
    SafeModeChanged,
    WealthTaxApplied,
)
from ecoplane.core.ports import Ledger, NotificationSink, QueryExecutor
from ecoplane.core.scheduler import PeriodicTask, Scheduler

__all__ = [
    "CycleChanged",
    "EventEnded",
    "EventStarted",
    "Ledger",
    "Notification",
    "NotificationBus",
    "NotificationSink",
    "PeriodicTask",
    "PriceChanged",
    "QueryExecutor",
    "SafeModeChanged",
    "Scheduler",
    "WealthTaxApplied",
]
