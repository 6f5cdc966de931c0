"""
Event and price history persistence through the host's query executor.

Writes never happen on the caller's thread: rows are queued in a bounded
buffer and written by :meth:`HistoryRecorder.flush`, which the control
plane runs as the ``history-flush`` scheduler task. Price rows are dropped
while the backend is considered unhealthy (safe mode) or the buffer is
full; event rows are only dropped on a full buffer.
"""

from __future__ import annotations

import json
import queue
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any

from ecoplane.components.event import EconomicEvent
from ecoplane.components.market_item import MarketItemState
from ecoplane.core.ports import QueryExecutor
from ecoplane.logging import getLogger
from ecoplane.typing import Clock

__all__ = ["HistoryRecorder", "PriceRecord"]

log = getLogger(__name__)

DAY = 86_400.0

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS ecoplane_price_history (
        item TEXT NOT NULL,
        buy_price REAL NOT NULL,
        sell_price REAL NOT NULL,
        volatility REAL NOT NULL,
        recorded_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ecoplane_economic_events (
        event_id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        status TEXT NOT NULL,
        parameters TEXT NOT NULL,
        start_time REAL NOT NULL,
        end_time REAL
    )
    """,
)

INSERT_PRICE = (
    "INSERT INTO ecoplane_price_history "
    "(item, buy_price, sell_price, volatility, recorded_at) VALUES (?, ?, ?, ?, ?)"
)
INSERT_EVENT = (
    "INSERT INTO ecoplane_economic_events "
    "(event_id, type, status, parameters, start_time, end_time) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)
UPDATE_EVENT = (
    "UPDATE ecoplane_economic_events SET status = ?, end_time = ? WHERE event_id = ?"
)
SELECT_PRICES = (
    "SELECT buy_price, sell_price, volatility, recorded_at "
    "FROM ecoplane_price_history WHERE item = ? AND recorded_at >= ? "
    "ORDER BY recorded_at"
)


@dataclass(slots=True, frozen=True)
class PriceRecord:
    """One persisted price row."""

    buy_price: float
    sell_price: float
    volatility: float
    recorded_at: float


def _statement(sql: str) -> str:
    return sql.split("(")[0].strip()


class HistoryRecorder:
    """
    Write-behind history of prices and events.

    Failures never propagate to the caller: they are logged and reported
    through *on_error* (normally the safe-mode breaker's
    ``record_critical_error``). With no executor every call is a no-op.

    Parameters
    ----------
    executor : QueryExecutor, optional
        Backend used for writes and history reads.
    on_error : callable, optional
        Called once per failed backend call.
    queue_size : int
        Maximum number of rows waiting for the next flush.
    read_timeout : float
        Seconds a history read may take before it is abandoned.
    suspended : callable, optional
        While it returns True, price rows are dropped instead of queued.
    clock : callable, optional
        Wall-clock source in seconds.
    """

    def __init__(
        self,
        executor: QueryExecutor | None = None,
        on_error: Callable[[], None] | None = None,
        *,
        queue_size: int = 10_000,
        read_timeout: float = 2.0,
        suspended: Callable[[], bool] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.executor = executor
        self.on_error = on_error
        self.read_timeout = read_timeout
        self.dropped = 0
        self._suspended = suspended or (lambda: False)
        self._clock: Clock = clock or time.time
        self._pending: queue.Queue[tuple[str, tuple[Any, ...]]] = queue.Queue(
            maxsize=max(1, queue_size)
        )
        self._overflowing = False
        self._reader: ThreadPoolExecutor | None = None

    @property
    def enabled(self) -> bool:
        return self.executor is not None

    @property
    def pending(self) -> int:
        return self._pending.qsize()

    # writes
    # ---------------------------------------------------------------------
    def ensure_schema(self) -> None:
        """Create the history tables; runs synchronously at start-up."""
        if self.executor is None:
            return
        for ddl in SCHEMA:
            self._write(ddl, ())

    def record_price(self, state: MarketItemState, at: float) -> None:
        if self.executor is None:
            return
        if self._suspended():
            self.dropped += 1
            return
        self._enqueue(
            INSERT_PRICE,
            (state.item, state.buy_price, state.sell_price, state.volatility, at),
        )

    def record_event_start(self, event: EconomicEvent) -> None:
        if self.executor is None:
            return
        params = json.dumps(dict(event.parameters), sort_keys=True, default=str)
        self._enqueue(
            INSERT_EVENT,
            (
                event.id,
                event.type.name,
                event.status.name,
                params,
                event.started_at,
                event.ends_at,
            ),
        )

    def record_event_end(self, event: EconomicEvent) -> None:
        if self.executor is None:
            return
        self._enqueue(UPDATE_EVENT, (event.status.name, event.ends_at, event.id))

    def flush(self) -> int:
        """
        Write the queued rows in order and return how many were written.

        The pass stops at the first failing write; that row is discarded and
        the rest stay queued for the next flush.
        """
        written = 0
        for _ in range(self._pending.qsize()):
            try:
                sql, params = self._pending.get_nowait()
            except queue.Empty:
                break
            if not self._write(sql, params):
                break
            written += 1
        self._overflowing = False
        if written:
            log.debug("Flushed %d history row(s), %d pending", written, self.pending)
        return written

    # reads
    # ---------------------------------------------------------------------
    def price_history(self, item: str, days: float = 1.0) -> list[PriceRecord]:
        """
        Persisted prices of *item* over the last *days*, oldest first.

        The read runs on a worker thread bounded by ``read_timeout``; a slow
        or failing backend yields an empty list and counts as an error.
        """
        if self.executor is None:
            return []
        executor = self.executor
        since = self._clock() - days * DAY
        if self._reader is None:
            self._reader = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="ecoplane-history"
            )
        future = self._reader.submit(executor.execute_query, SELECT_PRICES, (item, since))
        try:
            rows = future.result(timeout=self.read_timeout)
        except FutureTimeout:
            log.warning(
                "Price history read for %s exceeded %.1fs timeout", item, self.read_timeout
            )
            # the stuck worker is abandoned; the next read gets a fresh one
            self._reader.shutdown(wait=False, cancel_futures=True)
            self._reader = None
            self._report()
            return []
        except Exception:
            log.exception("Price history read for %s failed", item)
            self._report()
            return []
        return [PriceRecord(*map(float, row)) for row in rows]

    def close(self) -> None:
        if self._reader is not None:
            self._reader.shutdown(wait=False, cancel_futures=True)
            self._reader = None

    # helpers
    # ---------------------------------------------------------------------
    def _enqueue(self, sql: str, params: tuple[Any, ...]) -> None:
        try:
            self._pending.put_nowait((sql, params))
        except queue.Full:
            self.dropped += 1
            if not self._overflowing:
                self._overflowing = True
                log.warning(
                    "History buffer full (%d rows); dropping %s",
                    self._pending.maxsize,
                    _statement(sql),
                )

    def _write(self, sql: str, params: Sequence[Any]) -> bool:
        assert self.executor is not None
        try:
            self.executor.execute_update(sql, params)
        except Exception:
            log.exception("History write failed: %s", _statement(sql))
            self._report()
            return False
        return True

    def _report(self) -> None:
        if self.on_error is not None:
            self.on_error()
