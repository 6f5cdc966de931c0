# src/ecoplane/systems/policy.py
"""
Stabilizing policy rules: wealth tax planning, market bias, interest
recommendation, intervention choice and anomaly detection.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from ecoplane.components.snapshot import EconomicSnapshot

GLOBAL_FACTOR_MIN = 0.5
GLOBAL_FACTOR_MAX = 1.5


class Intervention(Enum):
    NONE = "none"
    MONETARY_EASING = "monetary_easing"
    MONETARY_TIGHTENING = "monetary_tightening"
    MARKET_STIMULATION = "market_stimulation"
    EMERGENCY_STIMULUS = "emergency_stimulus"
    WEALTH_REDISTRIBUTION = "wealth_redistribution"


class Anomaly(Enum):
    RAPID_HEALTH_CHANGE = "rapid_health_change"
    EXTREME_INFLATION = "extreme_inflation"
    HIGH_VOLATILITY = "high_volatility"
    WEALTH_INEQUALITY = "wealth_inequality"


@dataclass(slots=True, frozen=True)
class TaxPlan:
    """Deltas of one wealth-tax pass, computed before anything is applied."""

    rate: float
    threshold: float
    deltas: tuple[tuple[str, float], ...]

    @property
    def affected_accounts(self) -> int:
        return len(self.deltas)

    @property
    def collected(self) -> float:
        return -sum(d for _, d in self.deltas)


def plan_wealth_tax(
    balances: Iterable[tuple[str, float]],
    snapshot: EconomicSnapshot,
    *,
    rate: float,
    threshold_multiplier: float,
) -> TaxPlan:
    """
    Every balance strictly above ``average_balance · threshold_multiplier``
    loses ``balance · rate``.
    """
    threshold = snapshot.average_balance * threshold_multiplier
    deltas = tuple(
        (actor, -balance * rate)
        for actor, balance in balances
        if balance > threshold and rate > 0.0
    )
    return TaxPlan(rate=rate, threshold=threshold, deltas=deltas)


def should_tax(
    health: float, gini: float, *, critical_health: float, gini_threshold: float
) -> bool:
    return health < critical_health and gini > gini_threshold


def clamp_factor(value: float) -> float:
    return min(GLOBAL_FACTOR_MAX, max(GLOBAL_FACTOR_MIN, value))


def market_bias(inflation: float, health: float, bias_max: float) -> tuple[float, float]:
    """
    Continuous price bias from the macro state:

        b = clamp(inflation·0.5 − (health − 0.5)·0.02, −bias_max, +bias_max)
        buy factor = 1 + b,  sell factor = 1 − b
    """
    raw = inflation * 0.5 - (health - 0.5) * 0.02
    b = max(-bias_max, min(bias_max, raw))
    return clamp_factor(1.0 + b), clamp_factor(1.0 - b)


def recommended_interest_rate(health: float) -> float:
    """``clamp(0.01 + (0.5 − health)·0.02, 0, 0.05)``; weaker economy, higher rate."""
    return max(0.0, min(0.05, 0.01 + (0.5 - health) * 0.02))


def recommend_intervention(
    health: float, inflation: float, activity: float, gini: float
) -> Intervention:
    if health < 0.3:
        return Intervention.EMERGENCY_STIMULUS
    if inflation > 0.08:
        return Intervention.MONETARY_TIGHTENING
    if inflation < -0.03:
        return Intervention.MONETARY_EASING
    if activity < 0.2:
        return Intervention.MARKET_STIMULATION
    if gini > 0.8:
        return Intervention.WEALTH_REDISTRIBUTION
    return Intervention.NONE


def detect_anomalies(
    *,
    health_delta: float,
    inflation: float,
    volatility: float,
    gini: float,
    health_jump: float,
    inflation_limit: float,
    volatility_limit: float,
    gini_limit: float,
) -> list[Anomaly]:
    found = []
    if abs(health_delta) > health_jump:
        found.append(Anomaly.RAPID_HEALTH_CHANGE)
    if abs(inflation) > inflation_limit:
        found.append(Anomaly.EXTREME_INFLATION)
    if volatility > volatility_limit:
        found.append(Anomaly.HIGH_VOLATILITY)
    if gini > gini_limit:
        found.append(Anomaly.WEALTH_INEQUALITY)
    return found
