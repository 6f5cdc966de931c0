"""Tests for configuration loading, sanitizing and strict validation."""

import dataclasses
import warnings

import pytest

from ecoplane.config import Config, ConfigValidator
from ecoplane.control import load_config


class TestLoadConfig:
    def test_package_defaults(self):
        cfg = load_config()

        assert isinstance(cfg, Config)
        assert cfg.rate_limit_ops_per_second == 5
        assert cfg.safe_mode_latency_threshold_ms == 500.0
        assert cfg.market_items["diamond"] == {"base_price": 100.0, "category": "ores"}
        assert set(cfg.event_templates) == {
            "GOVERNMENT_STIMULUS",
            "TRADE_BOOM",
            "MARKET_DISCOVERY",
            "TECHNOLOGICAL_BREAKTHROUGH",
            "INVESTMENT_OPPORTUNITY",
            "LUXURY_DEMAND",
            "MARKET_CORRECTION",
            "RESOURCE_SHORTAGE",
            "SEASONAL_DEMAND",
            "BLACK_SWAN_EVENT",
        }
        assert cfg.event_seed is None

    def test_every_default_key_is_a_config_field(self):
        cfg = load_config()
        assert set(Config.field_names()) == {f.name for f in dataclasses.fields(cfg)}

    def test_keyword_overrides_win(self):
        cfg = load_config(rate_limit_ops_per_second=9, market_modifier_mode="additive")
        assert cfg.rate_limit_ops_per_second == 9
        assert cfg.market_modifier_mode == "additive"

    def test_yaml_file_then_overrides(self, tmp_path):
        path = tmp_path / "eco.yml"
        path.write_text("rate_limit_ops_per_second: 7\nsafe_mode_error_threshold: 4\n")

        cfg = load_config(path, safe_mode_error_threshold=6)

        assert cfg.rate_limit_ops_per_second == 7
        assert cfg.safe_mode_error_threshold == 6

    def test_yaml_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(TypeError, match="mapping"):
            load_config(path)

    def test_mapping_config(self):
        cfg = load_config({"event_base_probability": 0.5})
        assert cfg.event_base_probability == 0.5

    def test_config_is_frozen(self):
        cfg = load_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.rate_limit_ops_per_second = 1  # type: ignore[misc]

    def test_logging_section_merged_one_level(self):
        cfg = load_config(logging={"components": {"market": "DEBUG"}})
        assert cfg.logging["default_level"] == "INFO"
        assert cfg.logging["components"] == {"market": "DEBUG"}

    def test_template_override_keeps_other_templates(self):
        boom = {
            "duration_minutes": 10,
            "intensity": 0.5,
            "category": "market",
            "buy_delta": -0.05,
            "sell_delta": 0.05,
        }
        cfg = load_config(event_templates={"TRADE_BOOM": boom})

        assert cfg.event_templates["TRADE_BOOM"]["duration_minutes"] == 10
        assert cfg.event_templates["LUXURY_DEMAND"]["category"] == "luxury"


class TestSanitizing:
    def test_invalid_scalar_falls_back_to_default(self):
        cfg = load_config(rate_limit_ops_per_second="fast", market_floor_ratio=3.0)
        assert cfg.rate_limit_ops_per_second == 5
        assert cfg.market_floor_ratio == 0.10

    def test_invalid_choice_falls_back(self):
        cfg = load_config(cycle_forecast_method="arima")
        assert cfg.cycle_forecast_method == "linear"

    def test_unknown_keys_are_ignored(self):
        cfg = load_config(no_such_key=1)
        assert not hasattr(cfg, "no_such_key")

    def test_invalid_item_is_dropped(self):
        items = {
            "diamond": {"base_price": 100.0, "category": "ores"},
            "ghost": {"base_price": -1.0},
        }
        cfg = load_config(market_items=items)
        assert set(cfg.market_items) == {"diamond"}

    def test_item_category_defaults_to_general(self):
        cfg = load_config(market_items={"stick": {"base_price": 0.5}})
        assert cfg.market_items["stick"]["category"] == "general"

    def test_invalid_template_keeps_default(self):
        bad = {"duration_minutes": 30, "intensity": 2.0, "category": "luxury"}
        cfg = load_config(event_templates={"LUXURY_DEMAND": bad})
        assert cfg.event_templates["LUXURY_DEMAND"]["intensity"] == 0.4

    def test_unordered_thresholds_restore_group(self):
        cfg = load_config(cycle_growth_inflation=0.5)
        assert cfg.cycle_growth_inflation == 0.01
        assert cfg.cycle_boom_inflation == 0.04
        assert cfg.cycle_bubble_inflation == 0.08

    def test_zero_health_weights_restore_defaults(self):
        cfg = load_config(
            inflation_weight_inflation=0.0,
            inflation_weight_equality=0.0,
            inflation_weight_velocity=0.0,
        )
        assert cfg.inflation_weight_inflation == 0.4


class TestStrictValidation:
    def test_valid_values_pass(self):
        ConfigValidator.validate_config(
            {"rate_limit_ops_per_second": 3, "market_elasticity": 1, "safe_mode_enabled": False}
        )

    @pytest.mark.parametrize(
        "cfg, message",
        [
            ({"rate_limit_ops_per_second": 2.5}, "must be int"),
            ({"rate_limit_ops_per_second": True}, "must be int"),
            ({"market_elasticity": "0.1"}, "must be float"),
            ({"safe_mode_enabled": 1}, "must be bool"),
            ({"inflation_source": "vibes"}, "must be one of"),
            ({"market_sell_ratio": 1.5}, "must be <="),
            ({"safe_mode_error_threshold": 0}, "must be >="),
            ({"surprise": 1}, "Unknown config parameter"),
            ({"event_seed": "seven"}, "event_seed"),
            ({"logging": {"default_level": "LOUD"}}, "Invalid log level"),
            ({"logging": {"components": {"market": 3}}}, "component 'market'"),
            ({"market_items": {"x": {"base_price": 0}}}, "positive base_price"),
            ({"event_templates": {"NOPE": {"category": "x"}}}, "Unknown event type"),
            (
                {"event_templates": {"BLACK_SWAN_EVENT": {"category": "market", "shock_cycle": "PANIC"}}},
                "shock_cycle",
            ),
        ],
    )
    def test_invalid_values_raise(self, cfg, message):
        with pytest.raises(ValueError, match=message):
            ConfigValidator.validate_config(cfg)

    def test_floor_above_sell_ratio_warns(self):
        with pytest.warns(UserWarning, match="market_floor_ratio"):
            ConfigValidator.validate_config(
                {"market_floor_ratio": 0.9, "market_sell_ratio": 0.8}
            )

    def test_unordered_inflation_thresholds_warn(self):
        with pytest.warns(UserWarning, match="growth <= boom <= bubble"):
            ConfigValidator.validate_config(
                {"cycle_growth_inflation": 0.05, "cycle_boom_inflation": 0.01}
            )

    def test_defaults_file_is_valid(self):
        cfg = dataclasses.asdict(load_config())
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            ConfigValidator.validate_config(cfg)
