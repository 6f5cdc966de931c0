"""
Configuration dataclass for control-plane tuning constants.

This module defines the Config dataclass, which groups every threshold,
interval and weight used by the engines in one immutable object. Config
instances are created by ControlPlane.init() after merging the package
defaults, the user config and keyword overrides, and after sanitizing
invalid values back to their defaults.

Design Notes
------------
- Immutable (frozen=True); a reload builds a new Config and swaps it in
- Memory-efficient (slots=True)
- Flat field names grouped by component prefix
- Plain data; validation happens in ConfigValidator

See Also
--------
ConfigValidator : Validation and sanitizing of configuration values
ecoplane.control.ControlPlane.init : Creates Config from merged parameters
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any


@dataclass(slots=True, frozen=True)
class Config:
    """
    Immutable configuration for the economic control plane.

    Parameters are documented in ``defaults.yml``; the most relevant ones:

    Parameters
    ----------
    rate_limit_ops_per_second : int
        Per-(actor, action) admissions per wall-clock second.
    safe_mode_latency_threshold_ms : float
        Median probe latency above which safe mode activates.
    safe_mode_error_threshold : int
        Critical errors within the error window that activate safe mode.
    market_floor_ratio, market_ceiling_ratio : float
        Price bounds as multiples of an item's base price.
    market_elasticity : float
        Coefficient of the default trade-impact function.
    inflation_weight_inflation, inflation_weight_equality,
    inflation_weight_velocity : float
        Weights of the economic health components.
    cycle_confirm_ticks : int
        Consecutive sampling ticks of pressure needed to move the cycle.
    policy_wealth_tax_cooldown_minutes : float
        Window within which a wealth tax is never re-applied.
    event_templates : Mapping
        Per event type duration, intensity, category and price deltas.
    """

    # logging
    logging: Mapping[str, Any]

    # rate limiter
    rate_limit_ops_per_second: int

    # safe mode
    safe_mode_enabled: bool
    safe_mode_probe_interval_seconds: float
    safe_mode_probe_timeout_seconds: float
    safe_mode_latency_threshold_ms: float
    safe_mode_error_threshold: int
    safe_mode_sample_size: int
    safe_mode_error_window_seconds: float

    # history persistence
    history_queue_size: int
    history_flush_interval_seconds: float
    history_read_timeout_seconds: float

    # market pricing
    market_floor_ratio: float
    market_ceiling_ratio: float
    market_sell_ratio: float
    market_elasticity: float
    market_sell_elasticity_ratio: float
    market_max_change_per_trade: float
    market_volume_baseline_init: float
    market_volume_baseline_alpha: float
    market_decay_fraction: float
    market_decay_interval_seconds: float
    market_decay_idle_seconds: float
    market_trend_window_minutes: float
    market_trend_threshold_percent: float
    market_volatility_window: int
    market_notify_threshold_percent: float
    market_activity_window_minutes: float
    market_activity_saturation: int
    market_history_size: int
    market_modifier_mode: str
    market_items: Mapping[str, Mapping[str, Any]]

    # inflation and health
    inflation_sample_interval_seconds: float
    inflation_source: str
    inflation_velocity_window_seconds: float
    inflation_target: float
    inflation_tolerance: float
    inflation_velocity_low: float
    inflation_velocity_high: float
    inflation_weight_inflation: float
    inflation_weight_equality: float
    inflation_weight_velocity: float
    inflation_health_smoothing: float
    inflation_history_size: int

    # cycle classification
    cycle_depression_health: float
    cycle_recession_health: float
    cycle_growth_inflation: float
    cycle_boom_inflation: float
    cycle_bubble_inflation: float
    cycle_health_margin: float
    cycle_inflation_margin: float
    cycle_confirm_ticks: int
    cycle_forecast_method: str
    cycle_forecast_window: int
    cycle_forecast_alpha: float
    cycle_forecast_beta: float

    # stabilizing policy
    policy_critical_health: float
    policy_gini_threshold: float
    policy_wealth_tax_rate: float
    policy_wealth_tax_threshold_multiplier: float
    policy_wealth_tax_cooldown_minutes: float
    policy_stimulus_factor: float
    policy_cooldown_factor: float
    policy_intervention_minutes: float
    policy_bias_max: float
    policy_low_activity: float

    # anomaly detection
    anomaly_health_jump: float
    anomaly_inflation: float
    anomaly_volatility: float
    anomaly_gini: float

    # economic events
    event_tick_interval_seconds: float
    event_base_probability: float
    event_cooldown_hours: float
    event_min_gap_minutes: float
    event_recent_dampening: float
    event_stagnation_ticks: int
    event_templates: Mapping[str, Mapping[str, Any]]
    event_seed: int | None = field(default=None)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Names of all configuration keys, in declaration order."""
        return tuple(f.name for f in fields(cls))
