# src/ecoplane/components/snapshot.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from ecoplane.components.cycle import EconomicCycle


@dataclass(slots=True, frozen=True)
class EconomicSnapshot:
    """
    Aggregate monetary state produced by one sampling pass.

    Immutable: a sampling tick either produces a complete snapshot or none
    (the previous one stays authoritative).
    """

    total_money: float
    average_balance: float
    gini_coefficient: float  # 0..1
    velocity_of_money: float  # trailing volume / total money
    actor_count: int
    taken_at: float  # epoch seconds


@dataclass(slots=True, frozen=True)
class HealthSample:
    """One point of the health/inflation history used for forecasting."""

    health: float
    inflation_rate: float
    taken_at: float


@dataclass(slots=True, frozen=True)
class CycleForecast:
    """Derived, never persisted; recomputed from the recent history."""

    predicted_cycle: EconomicCycle
    confidence: float  # 0..1
    horizon: timedelta
