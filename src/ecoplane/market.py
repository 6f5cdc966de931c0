"""
Dynamic market pricing engine.

Per tradable item the engine keeps an *organic* buy/sell pair, moved only by
trades and by decay toward the item's base price, and derives the
*effective* pair players see:

    effective = clamp(organic · global factor ⊕ event modifiers, floor, ceiling)

with ``sell ≤ buy`` enforced after every update. Global factors come from
the inflation engine's market policy; event modifiers come from the event
engine, at most one per modifier category.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from itertools import islice

from ecoplane.components.event import EventModifier
from ecoplane.components.market_item import (
    MarketItemState,
    MarketTrend,
    TradeSide,
    TrendingItem,
)
from ecoplane.config import Config
from ecoplane.core.notifications import NotificationBus, PriceChanged
from ecoplane.logging import DEEP_DEBUG, getLogger
from ecoplane.persistence import HistoryRecorder
from ecoplane.systems import pricing
from ecoplane.systems.policy import clamp_factor
from ecoplane.systems.statistics import std_of
from ecoplane.typing import Clock

__all__ = ["GlobalFactors", "MarketEngine"]

log = getLogger(__name__)

DAY = 86_400.0
MARKET_CATEGORY = "market"

ModifierSource = Callable[[], Mapping[str, EventModifier]]


@dataclass(slots=True, frozen=True)
class GlobalFactors:
    buy: float = 1.0
    sell: float = 1.0
    until: float | None = None  # None: until replaced


def _no_modifiers() -> Mapping[str, EventModifier]:
    return {}


class MarketEngine:
    """
    Supply/demand pricing for every registered item.

    Parameters
    ----------
    config : Config
        ``market_*`` keys are read at the time of use.
    bus : NotificationBus, optional
        Receives :class:`PriceChanged` above the notify threshold.
    recorder : HistoryRecorder, optional
        Queues a price row after every trade.
    modifier_source : callable, optional
        Returns the active event modifiers keyed by category.
    elasticity : callable, optional
        Trade impact function, :func:`pricing.log_elasticity` by default.
    clock : callable, optional
        Wall-clock source in seconds.
    """

    def __init__(
        self,
        config: Config,
        *,
        bus: NotificationBus | None = None,
        recorder: HistoryRecorder | None = None,
        modifier_source: ModifierSource | None = None,
        elasticity: pricing.ElasticityFunction = pricing.log_elasticity,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self._bus = bus
        self._recorder = recorder or HistoryRecorder()
        self._modifier_source = modifier_source or _no_modifiers
        self._elasticity = elasticity
        self._clock: Clock = clock or time.time
        self._items: dict[str, MarketItemState] = {}
        self._lock = threading.RLock()
        self._global = GlobalFactors()

        for name, entry in config.market_items.items():
            self.register_item(name, entry["base_price"], entry.get("category", "general"))

    # registration
    # ---------------------------------------------------------------------
    def register_item(
        self, item: str, base_price: float, category: str = "general"
    ) -> MarketItemState:
        """Add *item* (or reset it) at its base price."""
        if base_price <= 0:
            raise ValueError(f"base_price must be positive, got {base_price}")
        cfg = self.config
        now = self._clock()
        state = MarketItemState(
            item=item,
            category=category,
            base_price=float(base_price),
            floor=base_price * cfg.market_floor_ratio,
            ceiling=base_price * cfg.market_ceiling_ratio,
            buy_price=float(base_price),
            sell_price=base_price * cfg.market_sell_ratio,
            organic_buy=float(base_price),
            organic_sell=base_price * cfg.market_sell_ratio,
            volume_baseline=cfg.market_volume_baseline_init,
            samples=deque(maxlen=cfg.market_history_size),
        )
        with self._lock:
            self._reprice(state, now)
            self._items[item] = state
        log.debug("Registered %s (%s) at base %.2f", item, category, base_price)
        return state

    def items(self) -> list[str]:
        return list(self._items)

    def get_state(self, item: str) -> MarketItemState:
        """Live state of *item*; raises ``KeyError`` for unknown items."""
        try:
            return self._items[item]
        except KeyError:
            raise KeyError(f"Unknown market item '{item}'") from None

    # trading
    # ---------------------------------------------------------------------
    def record_trade(self, item: str, side: TradeSide | str, quantity: float) -> float:
        """
        Apply one trade and return the new effective price of the traded side.

        Raises
        ------
        KeyError
            If *item* is not registered.
        ValueError
            If *quantity* is not positive or *side* is unknown.
        """
        side = TradeSide(side.lower()) if isinstance(side, str) else side
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")

        cfg = self.config
        with self._lock:
            state = self.get_state(item)
            now = self._clock()
            old_buy, old_sell = state.buy_price, state.sell_price

            impact = self._elasticity(
                quantity,
                state.volume_baseline,
                cfg.market_elasticity,
                cfg.market_max_change_per_trade,
            )
            buy, sell = pricing.apply_trade_impact(
                state.organic_buy,
                state.organic_sell,
                side,
                impact,
                cfg.market_sell_elasticity_ratio,
            )
            state.organic_buy, state.organic_sell = pricing.clamp_prices(
                buy, sell, state.floor, state.ceiling
            )
            alpha = cfg.market_volume_baseline_alpha
            state.volume_baseline = (1.0 - alpha) * state.volume_baseline + alpha * quantity
            state.last_trade_at = now
            state.trades.append((now, float(quantity)))

            self._reprice(state, now)
            self._refresh_stats(state, now)
            notice = self._price_notice(state, old_buy, old_sell, now)
            price = state.buy_price if side is TradeSide.BUY else state.sell_price

            if log.isEnabledFor(DEEP_DEBUG):
                log.deep(
                    f"  {side.value} {quantity:g} {item}: impact={impact:.4f} "
                    f"buy {old_buy:.2f}->{state.buy_price:.2f} "
                    f"sell {old_sell:.2f}->{state.sell_price:.2f}"
                )

        self._recorder.record_price(state, now)
        self._publish(notice)
        return price

    def decay(self) -> int:
        """
        Pull idle items back toward their base price and reprice every item.

        Items with no trade for ``market_decay_idle_seconds`` move
        ``market_decay_fraction`` of the way to ``(base, base · sell_ratio)``.
        Returns the number of items decayed.
        """
        cfg = self.config
        notices = []
        decayed = 0
        with self._lock:
            now = self._clock()
            for state in self._items.values():
                idle = (
                    state.last_trade_at is None
                    or now - state.last_trade_at >= cfg.market_decay_idle_seconds
                )
                old_buy, old_sell = state.buy_price, state.sell_price
                if idle:
                    state.organic_buy = pricing.decay_toward(
                        state.organic_buy, state.base_price, cfg.market_decay_fraction
                    )
                    state.organic_sell = pricing.decay_toward(
                        state.organic_sell,
                        state.base_price * cfg.market_sell_ratio,
                        cfg.market_decay_fraction,
                    )
                    decayed += 1
                self._reprice(state, now)
                self._refresh_stats(state, now)
                notices.append(self._price_notice(state, old_buy, old_sell, now))
        for notice in notices:
            self._publish(notice)
        log.debug("Market decay: %d/%d item(s) idle", decayed, len(self._items))
        return decayed

    def refresh(self) -> None:
        """Reprice every item, e.g. after the active modifiers changed."""
        notices = []
        with self._lock:
            now = self._clock()
            for state in self._items.values():
                old_buy, old_sell = state.buy_price, state.sell_price
                self._reprice(state, now)
                notices.append(self._price_notice(state, old_buy, old_sell, now))
        for notice in notices:
            self._publish(notice)

    def states(self) -> list[MarketItemState]:
        with self._lock:
            return list(self._items.values())

    # global factors
    # ---------------------------------------------------------------------
    def set_global_factors(
        self, buy: float, sell: float, duration_seconds: float | None = None
    ) -> GlobalFactors:
        """Install market-wide price factors, clamped to [0.5, 1.5]."""
        until = None if duration_seconds is None else self._clock() + duration_seconds
        factors = GlobalFactors(clamp_factor(buy), clamp_factor(sell), until)
        with self._lock:
            self._global = factors
        log.debug(
            "Global price factors buy=%.3f sell=%.3f%s",
            factors.buy,
            factors.sell,
            "" if until is None else f" for {duration_seconds:.0f}s",
        )
        self.refresh()
        return factors

    def global_factors(self) -> tuple[float, float]:
        with self._lock:
            factors = self._current_factors(self._clock())
        return factors.buy, factors.sell

    def intervention_active(self) -> bool:
        """Whether a temporary (expiring) global factor is still in effect."""
        with self._lock:
            return self._current_factors(self._clock()).until is not None

    # reads
    # ---------------------------------------------------------------------
    def get_trend(self, item: str) -> MarketTrend:
        """Trend of *item* over the last ``market_trend_window_minutes``."""
        with self._lock:
            state = self.get_state(item)
            now = self._clock()
            change = self._trend_change(state, now)
            state.trend = pricing.classify_trend(
                change, self.config.market_trend_threshold_percent
            )
            return MarketTrend(
                item=item,
                trend=state.trend,
                change_percent=change,
                volatility=state.volatility,
                volume=state.volume_24h,
            )

    def get_trending_items(self, limit: int = 10) -> list[TrendingItem]:
        """Items ordered by absolute 24h price change, then by 24h volume."""
        if limit <= 0:
            return []
        with self._lock:
            now = self._clock()
            for state in self._items.values():
                self._refresh_stats(state, now)
            ranked = sorted(
                self._items.values(),
                key=lambda s: (abs(s.price_change_24h), s.volume_24h),
                reverse=True,
            )
            return [
                TrendingItem(
                    item=s.item,
                    buy_price=s.buy_price,
                    sell_price=s.sell_price,
                    volume_24h=s.volume_24h,
                    price_change_24h=s.price_change_24h,
                )
                for s in ranked[:limit]
            ]

    def trade_volume(self, window_seconds: float) -> float:
        """Units traded across all items within the trailing window."""
        with self._lock:
            horizon = self._clock() - window_seconds
            return sum(
                q for s in self._items.values() for ts, q in s.trades if ts >= horizon
            )

    def market_activity(self) -> float:
        """Trades within the activity window over the saturation count, capped at 1."""
        cfg = self.config
        with self._lock:
            horizon = self._clock() - cfg.market_activity_window_minutes * 60.0
            count = sum(
                1 for s in self._items.values() for ts, _ in s.trades if ts >= horizon
            )
        return min(1.0, count / cfg.market_activity_saturation)

    def price_index(self) -> float:
        """Mean organic buy price relative to base; 1.0 means prices at base."""
        with self._lock:
            ratios = [s.organic_buy / s.base_price for s in self._items.values()]
        return sum(ratios) / len(ratios) if ratios else 1.0

    def mean_relative_volatility(self) -> float:
        """Average of volatility / buy price over all items."""
        with self._lock:
            values = [
                s.volatility / s.buy_price for s in self._items.values() if s.buy_price
            ]
        return sum(values) / len(values) if values else 0.0

    # helpers
    # ---------------------------------------------------------------------
    def _current_factors(self, now: float) -> GlobalFactors:
        # caller holds self._lock
        factors = self._global
        if factors.until is not None and now >= factors.until:
            factors = GlobalFactors()
            self._global = factors
        return factors

    def _modifiers_for(self, state: MarketItemState) -> list[EventModifier]:
        mods = []
        for mod in self._modifier_source().values():
            if mod.items:
                applies = state.item in mod.items
            else:
                applies = mod.category in (MARKET_CATEGORY, state.category)
            if applies:
                mods.append(mod)
        return mods

    def _reprice(self, state: MarketItemState, now: float) -> None:
        factors = self._current_factors(now)
        buy = state.organic_buy * factors.buy
        sell = state.organic_sell * factors.sell
        buy, sell = pricing.apply_modifiers(
            buy,
            sell,
            self._modifiers_for(state),
            additive=self.config.market_modifier_mode == "additive",
            base_price=state.base_price,
        )
        state.buy_price, state.sell_price = pricing.clamp_prices(
            buy, sell, state.floor, state.ceiling
        )
        state.samples.append((now, state.buy_price))
        window = self.config.market_volatility_window
        recent = islice(state.samples, max(0, len(state.samples) - window), None)
        state.volatility = std_of(p for _, p in recent)
        self._track_price(state, now)

    def _track_price(self, state: MarketItemState, now: float) -> None:
        prices = state.day_prices
        if not prices or prices[-1][1] != state.buy_price:
            prices.append((now, state.buy_price))
        retention = max(DAY, self.config.market_trend_window_minutes * 60.0)
        horizon = now - retention
        # keep the last change at or before the horizon: it is the price then
        while len(prices) > 1 and prices[1][0] <= horizon:
            prices.popleft()

    def _trend_change(self, state: MarketItemState, now: float) -> float:
        since = now - self.config.market_trend_window_minutes * 60.0
        ref = pricing.reference_price(state.day_prices, since)
        return pricing.change_percent(state.buy_price, ref if ref is not None else state.buy_price)

    def _refresh_stats(self, state: MarketItemState, now: float) -> None:
        horizon = now - DAY
        while state.trades and state.trades[0][0] < horizon:
            state.trades.popleft()
        state.volume_24h = sum(q for _, q in state.trades)
        ref = pricing.reference_price(state.day_prices, horizon)
        state.price_change_24h = pricing.change_percent(
            state.buy_price, ref if ref is not None else state.buy_price
        )
        state.trend = pricing.classify_trend(
            self._trend_change(state, now), self.config.market_trend_threshold_percent
        )

    def _price_notice(
        self, state: MarketItemState, old_buy: float, old_sell: float, now: float
    ) -> PriceChanged | None:
        notice = PriceChanged(
            item=state.item,
            old_buy=old_buy,
            new_buy=state.buy_price,
            old_sell=old_sell,
            new_sell=state.sell_price,
            volatility=state.volatility,
            at=now,
        )
        if notice.change_percent >= self.config.market_notify_threshold_percent:
            return notice
        return None

    def _publish(self, notice: PriceChanged | None) -> None:
        if notice is None:
            return
        log.info(
            "Price alert %s: buy %.2f->%.2f sell %.2f->%.2f",
            notice.item,
            notice.old_buy,
            notice.new_buy,
            notice.old_sell,
            notice.new_sell,
        )
        if self._bus is not None:
            self._bus.publish(notice)
