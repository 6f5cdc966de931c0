"""
Inflation and cycle intelligence engine.

One sampling tick:

1. read every balance from the ledger in a single pass;
2. build an immutable :class:`EconomicSnapshot` (total, average, Gini,
   velocity);
3. derive the inflation rate and the smoothed economic health;
4. advance the cycle state machine (hysteresis, one step at a time);
5. decide stabilizing policy from that same snapshot: wealth tax, or a
   market-wide price factor.

Steps 1-5 run under the policy lock, so a wealth tax never interleaves with
the balance read it was decided on. A failed balance read skips the tick
and keeps the previous snapshot authoritative.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import numpy as np

from ecoplane.components.cycle import EconomicCycle
from ecoplane.components.snapshot import CycleForecast, EconomicSnapshot, HealthSample
from ecoplane.config import Config
from ecoplane.core.notifications import (
    CycleChanged,
    Notification,
    NotificationBus,
    WealthTaxApplied,
)
from ecoplane.core.ports import Ledger
from ecoplane.logging import getLogger
from ecoplane.systems import cycles, policy
from ecoplane.systems.statistics import (
    HealthFunction,
    HealthInputs,
    HealthWeights,
    as_balances,
    gini_coefficient,
    relative_change,
    smooth,
    velocity_of_money,
    weighted_health,
)
from ecoplane.typing import Clock

if TYPE_CHECKING:
    from ecoplane.market import MarketEngine

__all__ = ["InflationEngine", "PolicyParams"]

log = getLogger(__name__)

NEUTRAL_HEALTH = 0.5


@dataclass(slots=True)
class PolicyParams:
    """Runtime-adjustable policy knobs, seeded from the config."""

    wealth_tax_rate: float
    wealth_tax_threshold_multiplier: float
    stimulus_factor: float
    cooldown_factor: float
    intervention_minutes: float
    bias_max: float

    @classmethod
    def from_config(cls, cfg: Config) -> PolicyParams:
        return cls(
            wealth_tax_rate=cfg.policy_wealth_tax_rate,
            wealth_tax_threshold_multiplier=cfg.policy_wealth_tax_threshold_multiplier,
            stimulus_factor=cfg.policy_stimulus_factor,
            cooldown_factor=cfg.policy_cooldown_factor,
            intervention_minutes=cfg.policy_intervention_minutes,
            bias_max=cfg.policy_bias_max,
        )


# (min, max) accepted by set_policy_param
POLICY_LIMITS: dict[str, tuple[float, float]] = {
    "wealth_tax_rate": (0.0, 0.05),
    "wealth_tax_threshold_multiplier": (1.0, 10.0),
    "stimulus_factor": (0.0, 0.2),
    "cooldown_factor": (0.0, 0.2),
    "intervention_minutes": (1.0, 120.0),
    "bias_max": (0.0, 0.2),
}


class InflationEngine:
    """
    Aggregate monetary state, health, cycle and stabilizing policy.

    Parameters
    ----------
    config : Config
        ``inflation_*``, ``cycle_*``, ``policy_*`` and ``anomaly_*`` keys.
    ledger : Ledger
        Source of balances and target of wealth-tax deltas.
    bus : NotificationBus, optional
        Receives :class:`CycleChanged` and :class:`WealthTaxApplied`.
    market : MarketEngine, optional
        Price level source and target of market-wide price factors.
    health_fn : callable, optional
        ``(HealthInputs, HealthWeights) -> float``; defaults to
        :func:`~ecoplane.systems.statistics.weighted_health`.
    on_error : callable, optional
        Called once per backend failure (balance read, ledger write).
    clock : callable, optional
        Wall-clock source in seconds.
    """

    def __init__(
        self,
        config: Config,
        ledger: Ledger,
        *,
        bus: NotificationBus | None = None,
        market: MarketEngine | None = None,
        health_fn: HealthFunction = weighted_health,
        on_error: Callable[[], None] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.market = market
        self.policy = PolicyParams.from_config(config)
        self._bus = bus
        self._health_fn = health_fn
        self._on_error = on_error
        self._clock: Clock = clock or time.time

        self._policy_lock = threading.Lock()
        self._tx_lock = threading.Lock()
        self._halted = threading.Event()

        # ── published readings (replaced, never mutated) ───────────────────
        self._snapshot: EconomicSnapshot | None = None
        self._health: float | None = None
        self._inflation = 0.0
        self._cycle = EconomicCycle.STABLE

        # ── rolling state ───────────────────────────────────────────────
        self._history: deque[HealthSample] = deque(maxlen=config.inflation_history_size)
        self._transactions: deque[tuple[float, float]] = deque()
        self._previous_level: float | None = None
        self._pressure_dir = 0
        self._pressure_ticks = 0
        self._last_tax_at: float | None = None

    # lifecycle
    # ---------------------------------------------------------------------
    def reconfigure(self, config: Config) -> None:
        self.config = config
        if self._history.maxlen != config.inflation_history_size:
            self._history = deque(self._history, maxlen=config.inflation_history_size)

    def halt(self) -> None:
        """Defer any not-yet-started policy action (used at shutdown)."""
        self._halted.set()

    def resume(self) -> None:
        self._halted.clear()

    # activity
    # ---------------------------------------------------------------------
    def record_transaction(self, amount: float, at: float | None = None) -> None:
        """Add monetary volume to the velocity window."""
        if amount <= 0:
            return
        with self._tx_lock:
            self._transactions.append((self._clock() if at is None else at, float(amount)))

    def transaction_volume(self, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        horizon = now - self.config.inflation_velocity_window_seconds
        with self._tx_lock:
            tx = self._transactions
            while tx and tx[0][0] < horizon:
                tx.popleft()
            # back-dated entries may sit behind newer ones
            return sum(amount for ts, amount in tx if ts >= horizon)

    # sampling
    # ---------------------------------------------------------------------
    def sample_snapshot(self) -> EconomicSnapshot | None:
        """
        Run one sampling tick.

        Returns the new snapshot, or None when the balance read failed (the
        previous snapshot stays current).
        """
        notices: list[Notification] = []
        interventions: list[tuple[float, float, float | None]] = []
        with self._policy_lock:
            now = self._clock()
            try:
                balances = list(self.ledger.get_all_balances())
            except Exception:
                log.exception("Balance read failed; keeping previous snapshot")
                self._report_error()
                return None

            arr = as_balances(b for _, b in balances)
            total = float(arr.sum())
            count = int(arr.size)
            velocity = velocity_of_money(self.transaction_volume(now), total)
            snapshot = EconomicSnapshot(
                total_money=total,
                average_balance=total / count if count else 0.0,
                gini_coefficient=gini_coefficient(arr),
                velocity_of_money=velocity,
                actor_count=count,
                taken_at=now,
            )

            level = self._price_level(total)
            inflation = relative_change(level, self._previous_level)
            self._previous_level = level

            raw = self._health_fn(
                HealthInputs(inflation, snapshot.gini_coefficient, velocity),
                self._weights(),
            )
            health = float(
                np.clip(
                    smooth(self._health, raw, self.config.inflation_health_smoothing),
                    0.0,
                    1.0,
                )
            )

            self._snapshot = snapshot
            self._health = health
            self._inflation = inflation
            self._history.append(HealthSample(health, inflation, now))

            change = self._advance_cycle(health, inflation, now)
            if change is not None:
                notices.append(change)

            notices.extend(
                self._apply_policy(snapshot, balances, health, inflation, now, interventions)
            )

        log.debug(
            "Snapshot: total=%.2f avg=%.2f gini=%.3f velocity=%.3f "
            "inflation=%.4f health=%.3f cycle=%s",
            snapshot.total_money,
            snapshot.average_balance,
            snapshot.gini_coefficient,
            snapshot.velocity_of_money,
            inflation,
            health,
            self._cycle.name,
        )
        if self.market is not None:
            for buy, sell, duration in interventions:
                self.market.set_global_factors(buy, sell, duration)
        for notice in notices:
            self._publish(notice)
        return snapshot

    # readings
    # ---------------------------------------------------------------------
    def get_current_snapshot(self) -> EconomicSnapshot | None:
        return self._snapshot

    def get_economic_health(self) -> float:
        return NEUTRAL_HEALTH if self._health is None else self._health

    def get_inflation_rate(self) -> float:
        return self._inflation

    def get_current_cycle(self) -> EconomicCycle:
        return self._cycle

    def get_velocity_of_money(self) -> float:
        return 0.0 if self._snapshot is None else self._snapshot.velocity_of_money

    def history(self) -> list[HealthSample]:
        return list(self._history)

    # cycle
    # ---------------------------------------------------------------------
    def force_cycle(self, cycle: EconomicCycle, reason: str = "shock") -> bool:
        """
        Jump straight to *cycle*, bypassing hysteresis (hard shocks only).

        Returns True when the cycle changed.
        """
        with self._policy_lock:
            old = self._cycle
            if old is cycle:
                return False
            self._cycle = cycle
            self._pressure_dir = 0
            self._pressure_ticks = 0
            notice = CycleChanged(old=old, new=cycle, forced=True, at=self._clock())
        log.warning("Cycle forced %s -> %s (%s)", old.name, cycle.name, reason)
        self._publish(notice)
        return True

    def forecast_cycle(self, horizon: timedelta) -> CycleForecast:
        """
        Predict the cycle *horizon* ahead from the last K health/inflation
        samples.

        The extrapolated pair is classified, then limited to the number of
        one-step transitions that fit into the horizon. Confidence shrinks
        with recent variance and with a short history.
        """
        seconds = horizon.total_seconds()
        if seconds <= 0:
            raise ValueError(f"horizon must be positive, got {horizon}")
        cfg = self.config
        current = self._cycle
        samples = list(self._history)[-cfg.cycle_forecast_window :]
        if len(samples) < 2:
            return CycleForecast(current, 0.0, horizon)

        health = np.array([s.health for s in samples])
        inflation = np.array([s.inflation_rate for s in samples])
        steps = seconds / cfg.inflation_sample_interval_seconds
        method = cycles.ForecastMethod(cfg.cycle_forecast_method)
        kwargs = {"alpha": cfg.cycle_forecast_alpha, "beta": cfg.cycle_forecast_beta}

        predicted_health = float(
            np.clip(cycles.extrapolate(health, steps, method, **kwargs), 0.0, 1.0)
        )
        predicted_inflation = cycles.extrapolate(inflation, steps, method, **kwargs)
        predicted = cycles.classify_cycle(
            predicted_health, predicted_inflation, self._thresholds()
        )
        predicted = cycles.cap_steps(
            current, predicted, int(steps // cfg.cycle_confirm_ticks)
        )
        confidence = cycles.forecast_confidence(
            health, inflation, cfg.cycle_forecast_window
        )
        return CycleForecast(predicted, confidence, horizon)

    # policy
    # ---------------------------------------------------------------------
    def policy_info(self) -> dict[str, Any]:
        info: dict[str, Any] = asdict(self.policy)
        info["last_wealth_tax_at"] = self._last_tax_at
        info["wealth_tax_cooldown_remaining"] = self._tax_cooldown_remaining(
            self._clock()
        )
        return info

    def set_policy_param(self, name: str, value: float) -> float:
        """Set one policy knob, clamped to its allowed range; returns the value kept."""
        if name not in POLICY_LIMITS:
            raise ValueError(
                f"Unknown policy parameter '{name}'. "
                f"Available: {sorted(POLICY_LIMITS)}"
            )
        lo, hi = POLICY_LIMITS[name]
        kept = min(hi, max(lo, float(value)))
        setattr(self.policy, name, kept)
        log.info("Policy parameter %s set to %s", name, kept)
        return kept

    def reload_policy(self) -> None:
        """Reset every policy knob to the configured value."""
        self.policy = PolicyParams.from_config(self.config)
        log.info("Policy parameters reloaded from configuration")

    def recommended_interest_rate(self) -> float:
        return policy.recommended_interest_rate(self.get_economic_health())

    def recommended_intervention(self) -> policy.Intervention:
        gini = 0.0 if self._snapshot is None else self._snapshot.gini_coefficient
        activity = 1.0 if self.market is None else self.market.market_activity()
        return policy.recommend_intervention(
            self.get_economic_health(), self._inflation, activity, gini
        )

    def detect_anomalies(self) -> list[policy.Anomaly]:
        cfg = self.config
        samples = list(self._history)[-2:]
        delta = samples[-1].health - samples[0].health if len(samples) == 2 else 0.0
        gini = 0.0 if self._snapshot is None else self._snapshot.gini_coefficient
        volatility = 0.0 if self.market is None else self.market.mean_relative_volatility()
        return policy.detect_anomalies(
            health_delta=delta,
            inflation=self._inflation,
            volatility=volatility,
            gini=gini,
            health_jump=cfg.anomaly_health_jump,
            inflation_limit=cfg.anomaly_inflation,
            volatility_limit=cfg.anomaly_volatility,
            gini_limit=cfg.anomaly_gini,
        )

    # helpers
    # ---------------------------------------------------------------------
    def _weights(self) -> HealthWeights:
        cfg = self.config
        return HealthWeights(
            target_inflation=cfg.inflation_target,
            tolerance=cfg.inflation_tolerance,
            velocity_low=cfg.inflation_velocity_low,
            velocity_high=cfg.inflation_velocity_high,
            w_inflation=cfg.inflation_weight_inflation,
            w_equality=cfg.inflation_weight_equality,
            w_velocity=cfg.inflation_weight_velocity,
        )

    def _thresholds(self) -> cycles.CycleThresholds:
        cfg = self.config
        return cycles.CycleThresholds(
            depression_health=cfg.cycle_depression_health,
            recession_health=cfg.cycle_recession_health,
            growth_inflation=cfg.cycle_growth_inflation,
            boom_inflation=cfg.cycle_boom_inflation,
            bubble_inflation=cfg.cycle_bubble_inflation,
            health_margin=cfg.cycle_health_margin,
            inflation_margin=cfg.cycle_inflation_margin,
        )

    def _price_level(self, total_money: float) -> float:
        if self.config.inflation_source == "price_level" and self.market is not None:
            return self.market.price_index()
        return total_money

    def _advance_cycle(
        self, health: float, inflation: float, now: float
    ) -> CycleChanged | None:
        direction = cycles.cycle_pressure(
            self._cycle, health, inflation, self._thresholds()
        )
        if direction == 0 or direction != self._pressure_dir:
            self._pressure_dir = direction
            self._pressure_ticks = 1 if direction else 0
        else:
            self._pressure_ticks += 1

        if direction == 0 or self._pressure_ticks < self.config.cycle_confirm_ticks:
            return None

        old = self._cycle
        new = EconomicCycle.from_rank(old.rank + direction)
        self._cycle = new
        self._pressure_dir = 0
        self._pressure_ticks = 0
        log.info("Economic cycle %s -> %s: %s", old.name, new.name, new.description)
        return CycleChanged(old=old, new=new, forced=False, at=now)

    def _tax_cooldown_remaining(self, now: float) -> float:
        if self._last_tax_at is None:
            return 0.0
        cooldown = self.config.policy_wealth_tax_cooldown_minutes * 60.0
        return max(0.0, self._last_tax_at + cooldown - now)

    def _apply_policy(
        self,
        snapshot: EconomicSnapshot,
        balances: list[tuple[str, float]],
        health: float,
        inflation: float,
        now: float,
        interventions: list[tuple[float, float, float | None]],
    ) -> list[Notification]:
        cfg = self.config
        p = self.policy
        minutes = p.intervention_minutes * 60.0

        if policy.should_tax(
            health,
            snapshot.gini_coefficient,
            critical_health=cfg.policy_critical_health,
            gini_threshold=cfg.policy_gini_threshold,
        ):
            notice = self._wealth_tax(snapshot, balances, health, now)
            if notice is not None:
                interventions.append(
                    (1.0 - p.cooldown_factor, 1.0 + p.cooldown_factor, minutes)
                )
                return [notice]

        market = self.market
        if market is None or market.intervention_active():
            return []
        if market.market_activity() < cfg.policy_low_activity:
            interventions.append(
                (1.0 - p.stimulus_factor, 1.0 + p.stimulus_factor, minutes)
            )
        else:
            buy, sell = policy.market_bias(inflation, health, p.bias_max)
            interventions.append((buy, sell, None))
        return []

    def _wealth_tax(
        self,
        snapshot: EconomicSnapshot,
        balances: list[tuple[str, float]],
        health: float,
        now: float,
    ) -> WealthTaxApplied | None:
        remaining = self._tax_cooldown_remaining(now)
        if remaining > 0:
            log.debug("Wealth tax on cooldown for another %.0fs", remaining)
            return None
        if self._halted.is_set():
            log.info("Wealth tax deferred: shutting down")
            return None

        plan = policy.plan_wealth_tax(
            balances,
            snapshot,
            rate=self.policy.wealth_tax_rate,
            threshold_multiplier=self.policy.wealth_tax_threshold_multiplier,
        )
        if not plan.deltas:
            return None

        applied: list[tuple[str, float]] = []
        try:
            for actor, delta in plan.deltas:
                self.ledger.apply_delta(actor, delta)
                applied.append((actor, delta))
        except Exception:
            log.exception(
                "Wealth tax failed after %d/%d account(s); rolling back, deferred",
                len(applied),
                plan.affected_accounts,
            )
            self._report_error()
            self._rollback(applied)
            return None

        self._last_tax_at = now
        reason = (
            f"health {health:.2f} below {self.config.policy_critical_health:.2f}, "
            f"gini {snapshot.gini_coefficient:.2f} above "
            f"{self.config.policy_gini_threshold:.2f}"
        )
        log.info(
            "Wealth tax applied: rate=%.4f threshold=%.2f accounts=%d collected=%.2f",
            plan.rate,
            plan.threshold,
            plan.affected_accounts,
            plan.collected,
        )
        return WealthTaxApplied(
            rate=plan.rate,
            threshold=plan.threshold,
            affected_accounts=plan.affected_accounts,
            collected=plan.collected,
            reason=reason,
            at=now,
        )

    def _rollback(self, applied: list[tuple[str, float]]) -> None:
        for actor, delta in reversed(applied):
            try:
                self.ledger.apply_delta(actor, -delta)
            except Exception:
                log.exception("Rollback of wealth tax failed for %s", actor)

    def _report_error(self) -> None:
        if self._on_error is not None:
            self._on_error()

    def _publish(self, notice: Notification) -> None:
        if self._bus is not None:
            self._bus.publish(notice)
