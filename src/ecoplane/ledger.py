"""
In-memory ledger.

Reference implementation of the :class:`~ecoplane.core.ports.Ledger` port,
used by the demo runner and the test-suite. Hosts plug their own balance
store in its place.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping

__all__ = ["InMemoryLedger"]


class InMemoryLedger:
    """Thread-safe mapping of actor id to balance."""

    def __init__(self, balances: Mapping[str, float] | None = None) -> None:
        self._lock = threading.Lock()
        self._balances: dict[str, float] = dict(balances or {})

    def get_all_balances(self) -> Iterable[tuple[str, float]]:
        with self._lock:
            return list(self._balances.items())

    def apply_delta(self, actor: str, delta: float) -> float:
        """Add *delta* to *actor*'s balance (opening it at zero) and return it."""
        with self._lock:
            new = self._balances.get(actor, 0.0) + delta
            self._balances[actor] = new
            return new

    def balance(self, actor: str) -> float:
        with self._lock:
            return self._balances.get(actor, 0.0)

    def total(self) -> float:
        with self._lock:
            return sum(self._balances.values())

    def __len__(self) -> int:
        return len(self._balances)
