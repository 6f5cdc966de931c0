"""
Type aliases for ecoplane.

Numeric series (balances, price samples, health history) are handled as
NumPy arrays inside the statistics helpers; these aliases keep the
signatures readable.
"""

from collections.abc import Callable
from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray

Float1D: TypeAlias = NDArray[np.float64]
Bool1D: TypeAlias = NDArray[np.bool_]

Clock: TypeAlias = Callable[[], float]
"""Zero-argument callable returning wall-clock seconds (``time.time``)."""

ActorId: TypeAlias = str
ItemId: TypeAlias = str

__all__ = [
    "Float1D",
    "Bool1D",
    "Clock",
    "ActorId",
    "ItemId",
]
