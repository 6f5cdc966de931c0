# src/ecoplane/systems/statistics.py
"""
Aggregate monetary statistics: inequality, velocity, inflation, health.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np

from ecoplane.logging import DEEP_DEBUG, getLogger
from ecoplane.typing import Float1D

log = getLogger(__name__)


def as_balances(values: Iterable[float]) -> Float1D:
    """Balances as a float array; negative balances count as zero wealth."""
    arr = np.fromiter((float(v) for v in values), dtype=np.float64)
    return np.maximum(arr, 0.0)


def gini_coefficient(balances: Float1D) -> float:
    """
    Gini coefficient over a balance distribution:

        G = 2·Σ(i·b_i) / (n·Σb_i) − (n+1)/n      (b sorted ascending, i = 1..n)

    Returns 0 for an empty, single-actor or all-zero distribution. The result
    is clamped to ``[0, 1]`` to absorb floating-point noise.
    """
    b = np.sort(np.asarray(balances, dtype=np.float64))
    n = b.size
    total = float(b.sum())
    if n < 2 or total <= 0.0:
        return 0.0
    i = np.arange(1, n + 1, dtype=np.float64)
    g = 2.0 * float(np.dot(i, b)) / (n * total) - (n + 1) / n
    if log.isEnabledFor(DEEP_DEBUG):
        log.deep(f"  gini over n={n} total={total:.2f} -> {g:.6f}")
    return float(min(1.0, max(0.0, g)))


def velocity_of_money(volume: float, total_money: float) -> float:
    """Trailing transaction volume divided by total money (0 when no money)."""
    if total_money <= 0.0:
        return 0.0
    return max(0.0, volume) / total_money


def relative_change(current: float, previous: float | None) -> float:
    """(current − previous) / previous, 0 without a usable previous value."""
    if previous is None or previous <= 0.0:
        return 0.0
    return (current - previous) / previous


# health
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class HealthInputs:
    inflation_rate: float
    gini: float
    velocity: float


@dataclass(slots=True, frozen=True)
class HealthWeights:
    target_inflation: float
    tolerance: float
    velocity_low: float
    velocity_high: float
    w_inflation: float
    w_equality: float
    w_velocity: float


HealthFunction = Callable[[HealthInputs, HealthWeights], float]


def inflation_component(rate: float, target: float, tolerance: float) -> float:
    """1 at the target, falling linearly to 0 at ``|rate − target| = tolerance``."""
    return max(0.0, 1.0 - abs(rate - target) / tolerance)


def velocity_component(velocity: float, low: float, high: float) -> float:
    """
    1 inside the healthy band ``[low, high]``; outside it the score decays as

        v / low     below the band
        high / v    above the band
    """
    if velocity < low:
        return velocity / low if low > 0 else 1.0
    if velocity > high:
        return high / velocity
    return 1.0


def weighted_health(inputs: HealthInputs, weights: HealthWeights) -> float:
    """
    Default economic health: normalized weighted mean of

        inflation component   (closeness to target inflation)
        equality component    1 − Gini
        velocity component    (velocity within the healthy band)
    """
    parts = np.array(
        [
            inflation_component(
                inputs.inflation_rate, weights.target_inflation, weights.tolerance
            ),
            1.0 - inputs.gini,
            velocity_component(
                inputs.velocity, weights.velocity_low, weights.velocity_high
            ),
        ]
    )
    w = np.array([weights.w_inflation, weights.w_equality, weights.w_velocity])
    total = float(w.sum())
    if total <= 0.0:
        return 0.5
    return float(np.clip(np.dot(parts, w) / total, 0.0, 1.0))


def smooth(previous: float | None, raw: float, factor: float) -> float:
    """Exponential smoothing ``(1 − s)·previous + s·raw`` (raw when first)."""
    if previous is None:
        return raw
    return (1.0 - factor) * previous + factor * raw


# spread
# ---------------------------------------------------------------------------
def std_of(samples: Iterable[float]) -> float:
    """Population standard deviation, 0 for fewer than two samples."""
    arr = np.fromiter(samples, dtype=np.float64)
    if arr.size < 2:
        return 0.0
    return float(np.std(arr))


def median_of(samples: Iterable[float]) -> float:
    arr = np.fromiter(samples, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))
