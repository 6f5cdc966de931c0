# src/ecoplane/components/cycle.py
from __future__ import annotations

from enum import Enum


class EconomicCycle(Enum):
    """
    Ordered set of economic cycle states.

    Declaration order is the cycle ordering used for one-step transitions:
    DEPRESSION < RECESSION < STABLE < GROWTH < BOOM < BUBBLE.

    Each member carries static display metadata: a display name, a message
    shown to players when the cycle is entered, an activity multiplier and
    the base inflation typical of the state.
    """

    DEPRESSION = (
        "Depression",
        "Economic depression detected. Government stimulus programs activated.",
        0.7,
        -0.02,
    )
    RECESSION = (
        "Recession",
        "Economic slowdown. Consider saving and investing wisely.",
        0.8,
        -0.01,
    )
    STABLE = (
        "Stable",
        "Economic conditions stabilized. Normal market activity resumed.",
        1.0,
        0.0,
    )
    GROWTH = (
        "Growth",
        "Economic growth period. Great time for investments and expansion!",
        1.2,
        0.01,
    )
    BOOM = (
        "Boom",
        "Economic boom! High market activity and opportunities.",
        1.4,
        0.03,
    )
    BUBBLE = (
        "Bubble",
        "Economic bubble warning! Exercise caution with large investments.",
        1.6,
        0.05,
    )

    def __init__(
        self,
        display_name: str,
        description: str,
        activity_multiplier: float,
        base_inflation: float,
    ) -> None:
        self.display_name = display_name
        self.description = description
        self.activity_multiplier = activity_multiplier
        self.base_inflation = base_inflation

    @property
    def rank(self) -> int:
        """Position in the cycle ordering (0 = DEPRESSION)."""
        return _ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> EconomicCycle:
        """Cycle at *rank*, clamped to the valid range."""
        return _ORDER[max(0, min(len(_ORDER) - 1, rank))]


_ORDER: tuple[EconomicCycle, ...] = tuple(EconomicCycle)
