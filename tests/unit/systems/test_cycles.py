"""Unit tests for cycle classification, hysteresis and forecasting."""

import numpy as np
import pytest

from ecoplane.components.cycle import EconomicCycle as C
from ecoplane.systems.cycles import (
    CycleThresholds,
    ForecastMethod,
    cap_steps,
    classify_cycle,
    cycle_pressure,
    extrapolate,
    extrapolate_holt,
    extrapolate_linear,
    forecast_confidence,
)

TH = CycleThresholds(
    depression_health=0.25,
    recession_health=0.45,
    growth_inflation=0.01,
    boom_inflation=0.04,
    bubble_inflation=0.08,
    health_margin=0.02,
    inflation_margin=0.002,
)


@pytest.mark.parametrize(
    "health, inflation, expected",
    [
        (0.10, 0.00, C.DEPRESSION),
        (0.10, 0.20, C.DEPRESSION),
        (0.30, 0.00, C.RECESSION),
        (0.80, 0.00, C.STABLE),
        (0.80, -0.05, C.STABLE),
        (0.80, 0.02, C.GROWTH),
        (0.80, 0.05, C.BOOM),
        (0.80, 0.10, C.BUBBLE),
    ],
)
def test_classify(health, inflation, expected):
    assert classify_cycle(health, inflation, TH) is expected


class TestPressure:
    def test_no_pressure_in_own_region(self):
        assert cycle_pressure(C.STABLE, 0.8, 0.0, TH) == 0

    def test_upward_pressure(self):
        assert cycle_pressure(C.STABLE, 0.8, 0.02, TH) == 1

    def test_upward_move_inside_margin_ignored(self):
        assert cycle_pressure(C.STABLE, 0.8, 0.011, TH) == 0

    def test_downward_pressure(self):
        assert cycle_pressure(C.STABLE, 0.40, 0.0, TH) == -1

    def test_downward_move_inside_margin_ignored(self):
        assert cycle_pressure(C.STABLE, 0.44, 0.0, TH) == 0

    def test_far_target_is_still_one_direction(self):
        assert cycle_pressure(C.DEPRESSION, 0.9, 0.2, TH) == 1


class TestCycleOrder:
    def test_rank(self):
        assert [c.rank for c in C] == list(range(6))

    @pytest.mark.parametrize("rank, expected", [(-3, C.DEPRESSION), (2, C.STABLE), (99, C.BUBBLE)])
    def test_from_rank_clamps(self, rank, expected):
        assert C.from_rank(rank) is expected

    def test_display_metadata(self):
        assert C.BOOM.display_name == "Boom"
        assert C.DEPRESSION.activity_multiplier == 0.7


class TestForecast:
    SERIES = np.array([0.0, 1.0, 2.0, 3.0])

    def test_linear(self):
        assert extrapolate_linear(self.SERIES, 2) == pytest.approx(5.0)

    def test_holt_follows_exact_trend(self):
        assert extrapolate_holt(self.SERIES, 2, alpha=0.5, beta=0.3) == pytest.approx(5.0)

    def test_single_point_is_flat(self):
        one = np.array([0.7])
        assert extrapolate(one, 10, ForecastMethod.LINEAR) == 0.7
        assert extrapolate(one, 10, ForecastMethod.EXPONENTIAL) == 0.7

    def test_method_dispatch(self):
        noisy = np.array([0.5, 0.7, 0.4, 0.8, 0.6])
        linear = extrapolate(noisy, 3, ForecastMethod.LINEAR)
        holt = extrapolate(noisy, 3, ForecastMethod.EXPONENTIAL, alpha=0.5, beta=0.3)
        assert linear == pytest.approx(extrapolate_linear(noisy, 3))
        assert holt == pytest.approx(extrapolate_holt(noisy, 3, 0.5, 0.3))

    def test_confidence_full_for_flat_complete_history(self):
        flat = np.full(12, 0.6)
        assert forecast_confidence(flat, np.zeros(12), 12) == pytest.approx(1.0)

    def test_confidence_scales_with_history_length(self):
        assert forecast_confidence(np.full(6, 0.6), np.zeros(6), 12) == pytest.approx(0.5)
        assert forecast_confidence(np.full(1, 0.6), np.zeros(1), 12) == 0.0

    def test_confidence_drops_with_variance(self):
        calm = forecast_confidence(np.full(12, 0.6), np.zeros(12), 12)
        noisy = forecast_confidence(
            np.array([0.2, 0.9] * 6), np.array([0.05, -0.05] * 6), 12
        )
        assert noisy < calm

    def test_cap_steps(self):
        assert cap_steps(C.STABLE, C.BUBBLE, 1) is C.GROWTH
        assert cap_steps(C.STABLE, C.DEPRESSION, 0) is C.STABLE
        assert cap_steps(C.STABLE, C.DEPRESSION, 5) is C.DEPRESSION
