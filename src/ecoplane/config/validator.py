"""Centralized configuration validation for ecoplane."""

from __future__ import annotations

import warnings
from collections.abc import Mapping
from typing import Any

from ecoplane.logging import getLogger

log = getLogger(__name__)


class ConfigValidator:
    """
    Centralized validation for control-plane configuration.

    Two entry points share the same per-key rules:

    - ``validate_config`` is strict and raises ``ValueError`` on the first
      invalid value. Useful for checking a config file before deploying it.
    - ``sanitize_config`` is lenient: invalid values are logged and replaced
      by their defaults so that initialization is never blocked by a bad
      tuning constant.
    """

    VALID_LOG_LEVELS = {"DEEP_DEBUG", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    INT_PARAMS = (
        "rate_limit_ops_per_second",
        "safe_mode_error_threshold",
        "safe_mode_sample_size",
        "history_queue_size",
        "market_volatility_window",
        "market_activity_saturation",
        "market_history_size",
        "inflation_history_size",
        "cycle_confirm_ticks",
        "cycle_forecast_window",
        "event_stagnation_ticks",
    )

    FLOAT_PARAMS = (
        "safe_mode_probe_interval_seconds",
        "safe_mode_probe_timeout_seconds",
        "safe_mode_latency_threshold_ms",
        "safe_mode_error_window_seconds",
        "history_flush_interval_seconds",
        "history_read_timeout_seconds",
        "market_floor_ratio",
        "market_ceiling_ratio",
        "market_sell_ratio",
        "market_elasticity",
        "market_sell_elasticity_ratio",
        "market_max_change_per_trade",
        "market_volume_baseline_init",
        "market_volume_baseline_alpha",
        "market_decay_fraction",
        "market_decay_interval_seconds",
        "market_decay_idle_seconds",
        "market_trend_window_minutes",
        "market_trend_threshold_percent",
        "market_notify_threshold_percent",
        "market_activity_window_minutes",
        "inflation_sample_interval_seconds",
        "inflation_velocity_window_seconds",
        "inflation_target",
        "inflation_tolerance",
        "inflation_velocity_low",
        "inflation_velocity_high",
        "inflation_weight_inflation",
        "inflation_weight_equality",
        "inflation_weight_velocity",
        "inflation_health_smoothing",
        "cycle_depression_health",
        "cycle_recession_health",
        "cycle_growth_inflation",
        "cycle_boom_inflation",
        "cycle_bubble_inflation",
        "cycle_health_margin",
        "cycle_inflation_margin",
        "cycle_forecast_alpha",
        "cycle_forecast_beta",
        "policy_critical_health",
        "policy_gini_threshold",
        "policy_wealth_tax_rate",
        "policy_wealth_tax_threshold_multiplier",
        "policy_wealth_tax_cooldown_minutes",
        "policy_stimulus_factor",
        "policy_cooldown_factor",
        "policy_intervention_minutes",
        "policy_bias_max",
        "policy_low_activity",
        "anomaly_health_jump",
        "anomaly_inflation",
        "anomaly_volatility",
        "anomaly_gini",
        "event_tick_interval_seconds",
        "event_base_probability",
        "event_cooldown_hours",
        "event_min_gap_minutes",
        "event_recent_dampening",
    )

    BOOL_PARAMS = ("safe_mode_enabled",)

    CHOICES = {
        "market_modifier_mode": {"multiplicative", "additive"},
        "inflation_source": {"money_supply", "price_level"},
        "cycle_forecast_method": {"linear", "exponential"},
    }

    # (min_val, max_val); None means unbounded
    RANGES: dict[str, tuple[float | None, float | None]] = {
        # Intervals and windows (strictly useful only when positive)
        "safe_mode_probe_interval_seconds": (0.001, None),
        "safe_mode_probe_timeout_seconds": (0.001, None),
        "safe_mode_latency_threshold_ms": (0.0, None),
        "safe_mode_error_threshold": (1, None),
        "safe_mode_sample_size": (1, None),
        "safe_mode_error_window_seconds": (0.001, None),
        "history_flush_interval_seconds": (0.001, None),
        "history_read_timeout_seconds": (0.001, None),
        "history_queue_size": (1, None),
        "market_decay_interval_seconds": (0.001, None),
        "market_decay_idle_seconds": (0.0, None),
        "market_trend_window_minutes": (0.0, None),
        "market_activity_window_minutes": (0.001, None),
        "inflation_sample_interval_seconds": (0.001, None),
        "inflation_velocity_window_seconds": (0.001, None),
        "event_tick_interval_seconds": (0.001, None),
        # Price bounds
        "market_floor_ratio": (0.0, 1.0),
        "market_ceiling_ratio": (1.0, None),
        "market_sell_ratio": (0.0, 1.0),
        # Elasticity
        "market_elasticity": (0.0, None),
        "market_sell_elasticity_ratio": (0.0, 1.0),
        "market_max_change_per_trade": (0.0, 1.0),
        "market_volume_baseline_init": (0.001, None),
        "market_volume_baseline_alpha": (0.0, 1.0),
        "market_decay_fraction": (0.0, 1.0),
        "market_trend_threshold_percent": (0.0, None),
        "market_notify_threshold_percent": (0.0, None),
        "market_volatility_window": (2, None),
        "market_activity_saturation": (1, None),
        "market_history_size": (2, None),
        # Health
        "inflation_tolerance": (0.0001, None),
        "inflation_velocity_low": (0.0, None),
        "inflation_velocity_high": (0.0, None),
        "inflation_weight_inflation": (0.0, None),
        "inflation_weight_equality": (0.0, None),
        "inflation_weight_velocity": (0.0, None),
        "inflation_health_smoothing": (0.0, 1.0),
        "inflation_history_size": (2, None),
        # Cycle thresholds
        "cycle_depression_health": (0.0, 1.0),
        "cycle_recession_health": (0.0, 1.0),
        "cycle_health_margin": (0.0, 1.0),
        "cycle_inflation_margin": (0.0, None),
        "cycle_confirm_ticks": (1, None),
        "cycle_forecast_window": (2, None),
        "cycle_forecast_alpha": (0.0, 1.0),
        "cycle_forecast_beta": (0.0, 1.0),
        # Policy
        "policy_critical_health": (0.0, 1.0),
        "policy_gini_threshold": (0.0, 1.0),
        "policy_wealth_tax_rate": (0.0, 0.05),
        "policy_wealth_tax_threshold_multiplier": (1.0, 10.0),
        "policy_wealth_tax_cooldown_minutes": (0.0, None),
        "policy_stimulus_factor": (0.0, 0.2),
        "policy_cooldown_factor": (0.0, 0.2),
        "policy_intervention_minutes": (1.0, 120.0),
        "policy_bias_max": (0.0, 0.2),
        "policy_low_activity": (0.0, 1.0),
        # Anomalies
        "anomaly_health_jump": (0.0, 1.0),
        "anomaly_inflation": (0.0, None),
        "anomaly_volatility": (0.0, None),
        "anomaly_gini": (0.0, 1.0),
        # Events
        "event_base_probability": (0.0, 1.0),
        "event_cooldown_hours": (0.0, None),
        "event_min_gap_minutes": (0.0, None),
        "event_recent_dampening": (0.0, 1.0),
        "event_stagnation_ticks": (1, None),
    }

    # public API
    # ---------------------------------------------------------------------
    @staticmethod
    def validate_config(cfg: Mapping[str, Any]) -> None:
        """
        Validate all configuration parameters.

        Parameters
        ----------
        cfg : Mapping
            Configuration dictionary to validate.

        Raises
        ------
        ValueError
            If any validation check fails.
        """
        for key, val in cfg.items():
            problem = ConfigValidator.check_value(key, val)
            if problem is not None:
                raise ValueError(problem)

        ConfigValidator._validate_relationships(cfg)

    @staticmethod
    def sanitize_config(
        cfg: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> dict[str, Any]:
        """
        Return a copy of *cfg* in which every invalid value is replaced.

        Invalid scalar values fall back to the value in *defaults*; invalid
        entries of the ``market_items`` and ``event_templates`` mappings are
        dropped individually. Unknown keys are ignored. Every replacement is
        logged at WARNING level.

        Parameters
        ----------
        cfg : Mapping
            Merged configuration (defaults, user config, overrides).
        defaults : Mapping
            Package defaults used as the fallback source.

        Returns
        -------
        dict
            Configuration whose keys are exactly those of *defaults*.
        """
        clean: dict[str, Any] = {}
        for key in cfg:
            if key not in defaults:
                log.warning("Ignoring unknown config key '%s'", key)

        for key, default in defaults.items():
            val = cfg.get(key, default)
            if key == "market_items":
                clean[key] = ConfigValidator._sanitize_items(val)
                continue
            if key == "event_templates":
                clean[key] = ConfigValidator._sanitize_templates(val, default)
                continue
            problem = ConfigValidator.check_value(key, val)
            if problem is not None:
                log.warning("%s; falling back to default %r", problem, default)
                val = default
            clean[key] = val

        ConfigValidator._sanitize_relationships(clean, defaults)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UserWarning)
            ConfigValidator._validate_relationships(clean)
        return clean

    @staticmethod
    def check_value(key: str, val: Any) -> str | None:
        """
        Check one configuration value.

        Returns
        -------
        str or None
            A human readable problem description, or None when valid.
        """
        if key == "logging":
            return ConfigValidator._check_logging(val)
        if key == "market_items":
            return ConfigValidator._check_items(val)
        if key == "event_templates":
            return ConfigValidator._check_templates(val)
        if key == "event_seed":
            if val is not None and (isinstance(val, bool) or not isinstance(val, int)):
                return f"Config parameter 'event_seed' must be int or None, got {type(val).__name__}"
            return None

        if key in ConfigValidator.INT_PARAMS:
            if isinstance(val, bool) or not isinstance(val, int):
                return f"Config parameter '{key}' must be int, got {type(val).__name__}"
        elif key in ConfigValidator.FLOAT_PARAMS:
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                return f"Config parameter '{key}' must be float, got {type(val).__name__}"
        elif key in ConfigValidator.BOOL_PARAMS:
            if not isinstance(val, bool):
                return f"Config parameter '{key}' must be bool, got {type(val).__name__}"
        elif key in ConfigValidator.CHOICES:
            choices = ConfigValidator.CHOICES[key]
            if val not in choices:
                return f"Config parameter '{key}' must be one of {sorted(choices)}, got {val!r}"
        else:
            return f"Unknown config parameter '{key}'"

        min_val, max_val = ConfigValidator.RANGES.get(key, (None, None))
        if min_val is not None and val < min_val:
            return f"Config parameter '{key}' must be >= {min_val}, got {val}"
        if max_val is not None and val > max_val:
            return f"Config parameter '{key}' must be <= {max_val}, got {val}"
        return None

    # helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def _validate_relationships(cfg: Mapping[str, Any]) -> None:
        """Warn about legal but suspicious parameter combinations."""
        floor = cfg.get("market_floor_ratio", 0.0)
        sell = cfg.get("market_sell_ratio", 1.0)
        if floor >= sell:
            warnings.warn(
                f"market_floor_ratio ({floor}) >= market_sell_ratio ({sell}). "
                "Sell prices will start pinned at the floor.",
                UserWarning,
                stacklevel=3,
            )

        low = cfg.get("inflation_velocity_low", 0.0)
        high = cfg.get("inflation_velocity_high", float("inf"))
        if low > high:
            warnings.warn(
                f"inflation_velocity_low ({low}) > inflation_velocity_high ({high}). "
                "The healthy velocity band is empty.",
                UserWarning,
                stacklevel=3,
            )

        depression = cfg.get("cycle_depression_health", 0.0)
        recession = cfg.get("cycle_recession_health", 1.0)
        if depression > recession:
            warnings.warn(
                f"cycle_depression_health ({depression}) > "
                f"cycle_recession_health ({recession}). RECESSION is unreachable.",
                UserWarning,
                stacklevel=3,
            )

        growth = cfg.get("cycle_growth_inflation", 0.0)
        boom = cfg.get("cycle_boom_inflation", growth)
        bubble = cfg.get("cycle_bubble_inflation", boom)
        if not growth <= boom <= bubble:
            warnings.warn(
                "cycle inflation thresholds must satisfy growth <= boom <= bubble "
                f"(got {growth}, {boom}, {bubble}).",
                UserWarning,
                stacklevel=3,
            )

    @staticmethod
    def _sanitize_relationships(
        clean: dict[str, Any], defaults: Mapping[str, Any]
    ) -> None:
        """Restore defaults for groups whose ordering is broken."""
        groups = (
            ("inflation_velocity_low", "inflation_velocity_high"),
            ("cycle_depression_health", "cycle_recession_health"),
            ("cycle_growth_inflation", "cycle_boom_inflation", "cycle_bubble_inflation"),
        )
        for keys in groups:
            values = [clean[k] for k in keys]
            if values != sorted(values):
                log.warning(
                    "Config parameters %s are not ordered (%s); using defaults",
                    ", ".join(keys),
                    values,
                )
                for k in keys:
                    clean[k] = defaults[k]

        weights = (
            clean["inflation_weight_inflation"]
            + clean["inflation_weight_equality"]
            + clean["inflation_weight_velocity"]
        )
        if weights <= 0:
            log.warning("Health weights sum to zero; using defaults")
            for k in (
                "inflation_weight_inflation",
                "inflation_weight_equality",
                "inflation_weight_velocity",
            ):
                clean[k] = defaults[k]

    @staticmethod
    def _check_logging(log_config: Any) -> str | None:
        if not isinstance(log_config, Mapping):
            return f"Logging config must be dict, got {type(log_config).__name__}"

        level = log_config.get("default_level", "INFO")
        if not isinstance(level, str) or level.upper() not in ConfigValidator.VALID_LOG_LEVELS:
            return (
                f"Invalid log level {level!r}. "
                f"Must be one of {sorted(ConfigValidator.VALID_LOG_LEVELS)}"
            )

        components = log_config.get("components") or {}
        if not isinstance(components, Mapping):
            return f"Logging components must be dict, got {type(components).__name__}"
        for name, comp_level in components.items():
            if not isinstance(name, str):
                return f"Component name must be str, got {type(name).__name__}"
            if (
                not isinstance(comp_level, str)
                or comp_level.upper() not in ConfigValidator.VALID_LOG_LEVELS
            ):
                return f"Invalid log level {comp_level!r} for component '{name}'"
        return None

    @staticmethod
    def _check_item(name: Any, entry: Any) -> str | None:
        if not isinstance(name, str) or not name:
            return f"Market item name must be a non-empty str, got {name!r}"
        if not isinstance(entry, Mapping):
            return f"Market item '{name}' must be a mapping, got {type(entry).__name__}"
        price = entry.get("base_price")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            return f"Market item '{name}' needs a positive base_price, got {price!r}"
        category = entry.get("category", "general")
        if not isinstance(category, str) or not category:
            return f"Market item '{name}' category must be a non-empty str"
        return None

    @staticmethod
    def _check_items(items: Any) -> str | None:
        if not isinstance(items, Mapping):
            return f"market_items must be dict, got {type(items).__name__}"
        for name, entry in items.items():
            problem = ConfigValidator._check_item(name, entry)
            if problem is not None:
                return problem
        return None

    @staticmethod
    def _sanitize_items(items: Any) -> dict[str, dict[str, Any]]:
        if not isinstance(items, Mapping):
            log.warning("market_items must be dict, got %s; no items loaded", type(items).__name__)
            return {}
        clean = {}
        for name, entry in items.items():
            problem = ConfigValidator._check_item(name, entry)
            if problem is not None:
                log.warning("%s; item skipped", problem)
                continue
            clean[name] = {
                "base_price": float(entry["base_price"]),
                "category": entry.get("category", "general"),
            }
        return clean

    @staticmethod
    def _check_template(name: Any, entry: Any) -> str | None:
        from ecoplane.components.event import EventType

        if name not in EventType.__members__:
            return f"Unknown event type '{name}' in event_templates"
        if not isinstance(entry, Mapping):
            return f"Event template '{name}' must be a mapping"
        for key in ("duration_minutes", "intensity", "buy_delta", "sell_delta", "stimulus_per_actor"):
            val = entry.get(key, 0.0)
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                return f"Event template '{name}' field '{key}' must be a number"
        if entry.get("duration_minutes", 0) < 0:
            return f"Event template '{name}' duration_minutes must be >= 0"
        if not 0.0 <= entry.get("intensity", 0.0) <= 1.0:
            return f"Event template '{name}' intensity must be within [0, 1]"
        category = entry.get("category")
        if not isinstance(category, str) or not category:
            return f"Event template '{name}' needs a category"
        shock = entry.get("shock_cycle")
        if shock is not None:
            from ecoplane.components.cycle import EconomicCycle

            if shock not in EconomicCycle.__members__:
                return f"Event template '{name}' has unknown shock_cycle {shock!r}"
        items = entry.get("items")
        if items is not None and (
            isinstance(items, str)
            or not isinstance(items, (list, tuple))
            or not all(isinstance(i, str) for i in items)
        ):
            return f"Event template '{name}' items must be a list of str"
        return None

    @staticmethod
    def _check_templates(templates: Any) -> str | None:
        if not isinstance(templates, Mapping):
            return f"event_templates must be dict, got {type(templates).__name__}"
        for name, entry in templates.items():
            problem = ConfigValidator._check_template(name, entry)
            if problem is not None:
                return problem
        return None

    @staticmethod
    def _sanitize_templates(
        templates: Any, defaults: Mapping[str, Any]
    ) -> dict[str, dict[str, Any]]:
        if not isinstance(templates, Mapping):
            log.warning("event_templates must be dict; using default templates")
            templates = defaults
        clean = {}
        for name, entry in templates.items():
            problem = ConfigValidator._check_template(name, entry)
            if problem is None:
                clean[name] = dict(entry)
            elif name in defaults:
                log.warning("%s; using default template", problem)
                clean[name] = dict(defaults[name])
            else:
                log.warning("%s; template skipped", problem)
        return clean
