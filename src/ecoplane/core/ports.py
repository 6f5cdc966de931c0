"""
Interfaces of the collaborators the control plane depends on.

Concrete implementations are supplied by the host at bootstrap and passed
to each component explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from ecoplane.core.notifications import Notification


@runtime_checkable
class Ledger(Protocol):
    """Balance store with one materialized balance per actor."""

    def get_all_balances(self) -> Iterable[tuple[str, float]]: ...

    def apply_delta(self, actor: str, delta: float) -> float: ...


@runtime_checkable
class QueryExecutor(Protocol):
    """Parameterized query/update executor backed by the persistent store."""

    def execute_query(
        self, sql: str, params: Sequence[Any] = ()
    ) -> list[tuple[Any, ...]]: ...

    def execute_update(self, sql: str, params: Sequence[Any] = ()) -> int: ...


@runtime_checkable
class NotificationSink(Protocol):
    """Anything able to receive published notifications."""

    def publish(self, notification: Notification) -> None: ...
