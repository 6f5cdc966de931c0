"""Command-line demo runner for ecoplane."""

from __future__ import annotations

import argparse

import numpy as np

from ecoplane.components.market_item import TradeSide
from ecoplane.control import ControlPlane
from ecoplane.core.notifications import Notification
from ecoplane.ledger import InMemoryLedger
from ecoplane.logging import getLogger

log = getLogger(__name__)


class SteppedClock:
    """Simulated wall clock advanced explicitly by the demo loop."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _cli(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run a seeded control-plane demo.")
    p.add_argument("--actors", type=int, default=200, help="Number of players")
    p.add_argument("--ticks", type=int, default=48, help="Sampling ticks to simulate")
    p.add_argument("--trades", type=int, default=40, help="Trades per tick")
    p.add_argument("--seed", type=int, default=42, help="RNG seed")
    p.add_argument("--config", default=None, help="YAML config file")
    p.add_argument("--log-level", default="INFO", help="ecoplane log level")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _cli(argv)
    rng = np.random.default_rng(args.seed)

    # lognormal wealth: a few rich players, many modest ones
    balances = rng.lognormal(mean=6.0, sigma=1.2, size=args.actors)
    ledger = InMemoryLedger({f"player{i:04d}": float(b) for i, b in enumerate(balances)})
    clock = SteppedClock()

    plane = ControlPlane.init(
        args.config,
        ledger=ledger,
        clock=clock,
        event_seed=args.seed,
        logging={"default_level": args.log_level},
    )

    def announce(notice: Notification) -> None:
        log.info("notification: %s", type(notice).__name__)

    plane.bus.subscribe(announce)

    items = plane.market.items()
    actors = [actor for actor, _ in ledger.get_all_balances()]
    interval = plane.config.inflation_sample_interval_seconds

    for tick in range(1, args.ticks + 1):
        for _ in range(args.trades):
            side = TradeSide.BUY if rng.random() < 0.55 else TradeSide.SELL
            plane.record_trade(
                str(rng.choice(actors)),
                str(rng.choice(items)),
                side,
                float(rng.integers(1, 64)),
            )
            clock.advance(interval / args.trades)
        plane.scheduler.run_once("market-decay")
        plane.scheduler.run_once("inflation-sample")
        plane.scheduler.run_once("event-tick")

        surface = plane.read_surface()
        log.info(
            "tick %3d  cycle=%-10s health=%.3f inflation=%+.4f gini=%.3f events=%d",
            tick,
            surface["cycle"],
            surface["health"],
            surface["inflation_rate"],
            surface["gini"],
            surface["active_events"],
        )

    for entry in plane.market.get_trending_items(5):
        log.info(
            "trending %-15s buy=%8.2f sell=%8.2f 24h=%+6.1f%%",
            entry.item,
            entry.buy_price,
            entry.sell_price,
            entry.price_change_24h,
        )
    log.info("Demo finished.")


if __name__ == "__main__":
    main()
