"""Tests for the market pricing engine."""

import math
import threading

import pytest

from ecoplane.components.event import EventModifier
from ecoplane.components.market_item import TradeSide, Trend
from ecoplane.core.notifications import PriceChanged
from ecoplane.market import DAY, MarketEngine
from ecoplane.persistence import HistoryRecorder
from ecoplane.systems.pricing import linear_elasticity
from tests.helpers.factories import RecordingQueryExecutor, make_config

LN2 = math.log(2)


@pytest.fixture
def market(cfg, bus, clock):
    return MarketEngine(cfg, bus=bus, clock=clock)


class TestRegistration:
    def test_configured_items_start_at_base(self, market):
        state = market.get_state("diamond")

        assert set(market.items()) >= {"diamond", "wheat", "enchanted_book"}
        assert state.buy_price == 100.0
        assert state.sell_price == pytest.approx(80.0)
        assert state.floor == pytest.approx(10.0)
        assert state.ceiling == pytest.approx(1000.0)
        assert state.category == "ores"

    def test_unknown_item(self, market):
        with pytest.raises(KeyError, match="Unknown market item"):
            market.get_state("unobtainium")

    def test_register_rejects_non_positive_price(self, market):
        with pytest.raises(ValueError):
            market.register_item("dirt", 0.0)

    def test_register_new_item(self, market):
        state = market.register_item("stick", 0.5)
        assert state.category == "general"
        assert "stick" in market.items()


class TestTrades:
    def test_buy_raises_prices(self, market):
        price = market.record_trade("diamond", TradeSide.BUY, 16)
        state = market.get_state("diamond")

        assert price == pytest.approx(100.0 * (1 + 0.05 * LN2))
        assert state.buy_price == price
        assert state.sell_price == pytest.approx(80.0 * (1 + 0.025 * LN2))

    def test_sell_lowers_prices(self, market):
        price = market.record_trade("diamond", "sell", 16)
        state = market.get_state("diamond")

        assert price == pytest.approx(80.0 * (1 - 0.05 * LN2))
        assert state.sell_price == price
        assert state.buy_price == pytest.approx(100.0 * (1 - 0.025 * LN2))

    def test_side_strings_are_case_insensitive(self, market):
        market.record_trade("wheat", "BUY", 1)

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, market, quantity):
        with pytest.raises(ValueError, match="quantity"):
            market.record_trade("diamond", TradeSide.BUY, quantity)

    def test_unknown_side(self, market):
        with pytest.raises(ValueError):
            market.record_trade("diamond", "hold", 1)

    def test_unknown_item(self, market):
        with pytest.raises(KeyError):
            market.record_trade("unobtainium", TradeSide.BUY, 1)

    def test_dumping_stops_at_floor(self, market):
        for _ in range(100):
            market.record_trade("diamond", TradeSide.SELL, 10_000)
        state = market.get_state("diamond")

        assert state.sell_price == pytest.approx(state.floor)
        assert state.floor <= state.sell_price <= state.buy_price

    def test_buying_stops_at_ceiling(self, market):
        for _ in range(100):
            market.record_trade("wheat", TradeSide.BUY, 10_000)
        state = market.get_state("wheat")

        assert state.buy_price == pytest.approx(state.ceiling)
        assert state.sell_price <= state.buy_price

    def test_volume_baseline_tracks_trade_size(self, market):
        market.record_trade("diamond", TradeSide.BUY, 116)
        assert market.get_state("diamond").volume_baseline == pytest.approx(26.0)

    def test_custom_elasticity(self, cfg, clock):
        market = MarketEngine(cfg, elasticity=linear_elasticity, clock=clock)
        assert market.record_trade("diamond", TradeSide.BUY, 16) == pytest.approx(105.0)

    def test_volatility_grows_with_trading(self, market):
        for side in ("buy", "sell") * 5:
            market.record_trade("diamond", side, 50)
        assert market.get_state("diamond").volatility > 0.0

    def test_trade_is_persisted(self, cfg, clock):
        executor = RecordingQueryExecutor()
        recorder = HistoryRecorder(executor)
        market = MarketEngine(cfg, recorder=recorder, clock=clock)

        market.record_trade("diamond", TradeSide.BUY, 4)
        assert executor.updates == []
        recorder.flush()

        [(_, params)] = executor.statements("INSERT INTO ecoplane_price_history")
        assert params[0] == "diamond"


class TestDecay:
    def test_idle_items_move_toward_base(self, market, clock):
        market.record_trade("diamond", TradeSide.BUY, 500)
        before = market.get_state("diamond").organic_buy
        clock.advance(301)

        decayed = market.decay()

        assert decayed == len(market.items())
        expected = before + (100.0 - before) * 0.05
        assert market.get_state("diamond").organic_buy == pytest.approx(expected)

    def test_recently_traded_item_is_not_decayed(self, market):
        market.record_trade("diamond", TradeSide.BUY, 500)
        before = market.get_state("diamond").organic_buy

        decayed = market.decay()

        assert decayed == len(market.items()) - 1
        assert market.get_state("diamond").organic_buy == before

    def test_decay_converges_to_base(self, market, clock):
        market.record_trade("diamond", TradeSide.BUY, 500)
        for _ in range(400):
            clock.advance(301)
            market.decay()
        state = market.get_state("diamond")
        assert state.buy_price == pytest.approx(100.0, rel=1e-3)
        assert state.sell_price == pytest.approx(80.0, rel=1e-3)


class TestGlobalFactors:
    def test_factors_apply_to_effective_prices(self, market):
        market.set_global_factors(1.1, 0.9)
        state = market.get_state("diamond")

        assert state.buy_price == pytest.approx(110.0)
        assert state.sell_price == pytest.approx(72.0)
        assert state.organic_buy == 100.0

    def test_factors_are_clamped(self, market):
        market.set_global_factors(3.0, 0.1)
        assert market.global_factors() == (1.5, 0.5)

    def test_temporary_factors_expire(self, market, clock):
        market.set_global_factors(1.1, 0.9, duration_seconds=60)
        assert market.intervention_active()

        clock.advance(61)

        assert not market.intervention_active()
        assert market.global_factors() == (1.0, 1.0)

    def test_expiry_waits_for_engine_lock(self, market, clock):
        market.set_global_factors(1.1, 0.9, duration_seconds=60)
        clock.advance(61)
        seen = []
        reader = threading.Thread(
            target=lambda: seen.append((market.global_factors(), market.intervention_active()))
        )

        with market._lock:
            reader.start()
            reader.join(0.1)
            assert seen == []
        reader.join(2.0)

        assert seen == [((1.0, 1.0), False)]

    def test_permanent_factors_are_not_an_intervention(self, market):
        market.set_global_factors(1.01, 0.99)
        assert not market.intervention_active()


class TestModifiers:
    def _market(self, cfg, clock, mods):
        return MarketEngine(cfg, modifier_source=lambda: mods, clock=clock)

    def test_category_modifier(self, cfg, clock):
        mods = {}
        market = self._market(cfg, clock, mods)
        mods["ores"] = EventModifier("e1", "ores", 0.1, -0.1)

        market.refresh()

        assert market.get_state("diamond").buy_price == pytest.approx(110.0)
        assert market.get_state("diamond").sell_price == pytest.approx(72.0)
        assert market.get_state("wheat").buy_price == pytest.approx(1.0)

    def test_market_category_applies_everywhere(self, cfg, clock):
        mods = {"market": EventModifier("e1", "market", -0.1, 0.0)}
        market = self._market(cfg, clock, mods)

        assert market.get_state("diamond").buy_price == pytest.approx(90.0)
        assert market.get_state("wheat").buy_price == pytest.approx(0.9)

    def test_item_list_restricts_targets(self, cfg, clock):
        mods = {"market": EventModifier("e1", "market", 0.5, 0.0, frozenset({"wheat"}))}
        market = self._market(cfg, clock, mods)

        assert market.get_state("wheat").buy_price == pytest.approx(1.5)
        assert market.get_state("diamond").buy_price == pytest.approx(100.0)

    def test_modifiers_stack_across_categories(self, cfg, clock):
        mods = {
            "market": EventModifier("e1", "market", 0.1, 0.0),
            "ores": EventModifier("e2", "ores", 0.1, 0.0),
        }
        market = self._market(cfg, clock, mods)
        assert market.get_state("diamond").buy_price == pytest.approx(121.0)

    def test_additive_mode(self, clock):
        cfg = make_config(market_modifier_mode="additive")
        mods = {"ores": EventModifier("e1", "ores", 0.1, -0.1)}
        market = self._market(cfg, clock, mods)

        assert market.get_state("diamond").buy_price == pytest.approx(110.0)
        assert market.get_state("diamond").sell_price == pytest.approx(70.0)

    def test_sell_never_exceeds_buy(self, cfg, clock):
        mods = {"ores": EventModifier("e1", "ores", -0.5, 0.5)}
        market = self._market(cfg, clock, mods)
        state = market.get_state("diamond")

        assert state.buy_price == pytest.approx(50.0)
        assert state.sell_price == state.buy_price


class TestNotifications:
    def test_large_move_is_announced(self, market, bus):
        seen = []
        bus.subscribe(seen.append, PriceChanged)

        market.set_global_factors(1.3, 1.3)

        assert {n.item for n in seen} == set(market.items())
        assert seen[0].change_percent == pytest.approx(30.0)

    def test_small_move_is_silent(self, market, bus):
        seen = []
        bus.subscribe(seen.append, PriceChanged)

        market.record_trade("diamond", TradeSide.BUY, 1)

        assert seen == []


class TestReadings:
    def test_trend_rising_after_buying(self, market):
        market.record_trade("diamond", TradeSide.BUY, 32)
        trend = market.get_trend("diamond")

        assert trend.trend is Trend.RISING
        assert trend.change_percent > 1.0

    def test_trend_falling_after_selling(self, market):
        market.record_trade("diamond", TradeSide.SELL, 64)
        assert market.get_trend("diamond").trend is Trend.FALLING

    def test_untraded_item_is_stable(self, market):
        assert market.get_trend("oak_log").trend is Trend.STABLE

    def test_trending_items_order(self, market):
        market.record_trade("diamond", TradeSide.BUY, 16)
        for _ in range(5):
            market.record_trade("wheat", TradeSide.BUY, 16)

        ranking = market.get_trending_items(limit=3)

        assert [r.item for r in ranking[:2]] == ["wheat", "diamond"]
        assert len(ranking) == 3
        assert market.get_trending_items(limit=0) == []

    def test_volume_window(self, market, clock):
        market.record_trade("diamond", TradeSide.BUY, 10)
        market.record_trade("diamond", TradeSide.SELL, 10)
        assert market.get_state("diamond").volume_24h == 20.0
        assert market.trade_volume(60) == 20.0

        clock.advance(DAY + 1)
        market.get_trending_items()

        assert market.get_state("diamond").volume_24h == 0.0
        assert market.trade_volume(60) == 0.0

    def test_day_change_outlives_sample_history(self, clock):
        market = MarketEngine(make_config(market_decay_fraction=0.001), clock=clock)
        market.record_trade("diamond", TradeSide.BUY, 16)
        ticks = 1500
        horizon = clock.now + ticks * 60.0 - DAY
        reference = None
        for _ in range(ticks):
            clock.advance(60)
            market.decay()
            if clock.now == horizon:
                reference = market.get_state("diamond").buy_price
        state = market.get_state("diamond")

        assert len(state.samples) == 1000
        assert reference is not None
        expected = (state.buy_price - reference) / reference * 100.0
        assert state.price_change_24h == pytest.approx(expected)
        assert state.price_change_24h < 0.0
        assert state.day_prices[0][0] <= horizon < state.day_prices[1][0]

    def test_trend_uses_price_in_effect_at_window_start(self, market, clock):
        market.record_trade("diamond", TradeSide.BUY, 32)
        risen = market.get_state("diamond").buy_price
        clock.advance(2 * 3600)
        market.record_trade("diamond", TradeSide.SELL, 8)
        trend = market.get_trend("diamond")

        # the earlier buy is still the price in effect when the window opens
        assert trend.change_percent == pytest.approx(
            (market.get_state("diamond").buy_price - risen) / risen * 100.0
        )

    def test_market_activity(self, market):
        assert market.market_activity() == 0.0
        for _ in range(5):
            market.record_trade("wheat", TradeSide.BUY, 1)
        assert market.market_activity() == pytest.approx(0.1)
        for _ in range(100):
            market.record_trade("wheat", TradeSide.BUY, 1)
        assert market.market_activity() == 1.0

    def test_price_index_uses_organic_prices(self, market):
        assert market.price_index() == pytest.approx(1.0)
        market.set_global_factors(1.2, 1.0)
        assert market.price_index() == pytest.approx(1.0)
        market.record_trade("diamond", TradeSide.BUY, 16)
        assert market.price_index() > 1.0
