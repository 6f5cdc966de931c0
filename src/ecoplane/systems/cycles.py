# src/ecoplane/systems/cycles.py
"""
Cycle classification with hysteresis and short-horizon cycle forecasting.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from ecoplane.components.cycle import EconomicCycle
from ecoplane.typing import Float1D


@dataclass(slots=True, frozen=True)
class CycleThresholds:
    depression_health: float
    recession_health: float
    growth_inflation: float
    boom_inflation: float
    bubble_inflation: float
    health_margin: float
    inflation_margin: float


def classify_cycle(
    health: float, inflation: float, th: CycleThresholds
) -> EconomicCycle:
    """
    Map (health, inflation) to a cycle.

        health < depression_health          → DEPRESSION
        health < recession_health           → RECESSION
        inflation ≥ bubble_inflation        → BUBBLE
        inflation ≥ boom_inflation          → BOOM
        inflation ≥ growth_inflation        → GROWTH
        otherwise                           → STABLE

    The mapping is non-decreasing in both arguments, which the hysteresis
    rule below relies on.
    """
    if health < th.depression_health:
        return EconomicCycle.DEPRESSION
    if health < th.recession_health:
        return EconomicCycle.RECESSION
    if inflation >= th.bubble_inflation:
        return EconomicCycle.BUBBLE
    if inflation >= th.boom_inflation:
        return EconomicCycle.BOOM
    if inflation >= th.growth_inflation:
        return EconomicCycle.GROWTH
    return EconomicCycle.STABLE


def cycle_pressure(
    current: EconomicCycle, health: float, inflation: float, th: CycleThresholds
) -> int:
    """
    Direction the cycle is being pushed: +1 up, −1 down, 0 none.

    Both metrics are shifted against the direction of travel by their
    margins before classifying again; only a target that survives the shift
    counts as pressure.
    """
    raw = classify_cycle(health, inflation, th)
    if raw.rank > current.rank:
        shifted = classify_cycle(
            health - th.health_margin, inflation - th.inflation_margin, th
        )
        return 1 if shifted.rank > current.rank else 0
    if raw.rank < current.rank:
        shifted = classify_cycle(
            health + th.health_margin, inflation + th.inflation_margin, th
        )
        return -1 if shifted.rank < current.rank else 0
    return 0


class ForecastMethod(Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def extrapolate_linear(series: Float1D, steps: float) -> float:
    """Least-squares line through *series*, evaluated *steps* past the end."""
    n = series.size
    if n < 2:
        return float(series[-1])
    x = np.arange(n, dtype=np.float64)
    slope, intercept = np.polyfit(x, series, 1)
    return float(intercept + slope * (n - 1 + steps))


def extrapolate_holt(
    series: Float1D, steps: float, alpha: float, beta: float
) -> float:
    """
    Holt double exponential smoothing:

        level_t = α·y_t + (1 − α)·(level_{t−1} + trend_{t−1})
        trend_t = β·(level_t − level_{t−1}) + (1 − β)·trend_{t−1}
        ŷ       = level_n + steps·trend_n
    """
    if series.size < 2:
        return float(series[-1])
    level = float(series[0])
    trend = float(series[1] - series[0])
    for y in series[1:]:
        prev_level = level
        level = alpha * float(y) + (1.0 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1.0 - beta) * trend
    return level + steps * trend


def extrapolate(
    series: Float1D,
    steps: float,
    method: ForecastMethod,
    *,
    alpha: float = 0.5,
    beta: float = 0.3,
) -> float:
    if method is ForecastMethod.EXPONENTIAL:
        return extrapolate_holt(series, steps, alpha, beta)
    return extrapolate_linear(series, steps)


def forecast_confidence(
    health: Float1D, inflation: Float1D, window: int
) -> float:
    """
    Confidence in [0, 1], shrinking with recent variance and short history:

        min(1, n / window) / (1 + std(health)/0.05 + std(inflation)/0.005)
    """
    n = health.size
    if n < 2:
        return 0.0
    coverage = min(1.0, n / window)
    spread = float(np.std(health)) / 0.05 + float(np.std(inflation)) / 0.005
    return float(np.clip(coverage / (1.0 + spread), 0.0, 1.0))


def cap_steps(
    current: EconomicCycle, predicted: EconomicCycle, max_steps: int
) -> EconomicCycle:
    """Limit *predicted* to at most *max_steps* one-step moves from *current*."""
    delta = predicted.rank - current.rank
    delta = max(-max_steps, min(max_steps, delta))
    return EconomicCycle.from_rank(current.rank + delta)
