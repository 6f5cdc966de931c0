"""
Background scheduling of periodic control-plane work.

Each :class:`PeriodicTask` owns one daemon thread that sleeps on a
``threading.Event`` between runs, so a shutdown wakes it immediately. A run
that raises is logged with the task name and the loop keeps going; one
failing task never stops the others.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from ecoplane.logging import getLogger

__all__ = ["PeriodicTask", "Scheduler"]

log = getLogger(__name__)


class PeriodicTask:
    """
    Call *fn* every *interval* seconds on a background thread.

    Parameters
    ----------
    name : str
        Task name used in thread names and log records.
    interval : float or callable
        Seconds between runs. A zero-argument callable is re-read before
        every wait, which lets a config reload change the period.
    fn : callable
        Work to run; its return value is ignored.
    """

    def __init__(
        self,
        name: str,
        interval: float | Callable[[], float],
        fn: Callable[[], object],
    ) -> None:
        self.name = name
        self._interval = interval
        self._fn = fn
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0
        self.failures = 0

    @property
    def interval(self) -> float:
        value = self._interval() if callable(self._interval) else self._interval
        return max(0.001, float(value))

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Run the task synchronously; return False when it raised."""
        self.runs += 1
        try:
            self._fn()
        except Exception:
            self.failures += 1
            log.exception("Scheduled task '%s' failed", self.name)
            return False
        return True

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"ecoplane-{self.name}", daemon=True
        )
        self._thread.start()
        log.debug("Task '%s' started (every %.1fs)", self.name, self.interval)

    def cancel(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait up to *timeout* for the thread."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()


class Scheduler:
    """
    Owner of the control plane's periodic tasks.

    Tasks added while the scheduler runs are started immediately.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()
        self._running = False

    def add(
        self,
        name: str,
        interval: float | Callable[[], float],
        fn: Callable[[], object],
    ) -> PeriodicTask:
        with self._lock:
            if name in self._tasks:
                raise ValueError(f"Task '{name}' already registered")
            task = PeriodicTask(name, interval, fn)
            self._tasks[name] = task
            if self._running:
                task.start()
        return task

    def remove(self, name: str) -> None:
        with self._lock:
            task = self._tasks.pop(name, None)
        if task is not None:
            task.cancel()

    def get(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    @property
    def names(self) -> list[str]:
        return list(self._tasks)

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            self._running = True
            tasks = list(self._tasks.values())
        for task in tasks:
            task.start()
        log.info("Scheduler started %d task(s)", len(tasks))

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            self._running = False
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel(timeout)
        log.info("Scheduler stopped")

    def run_once(self, name: str) -> bool:
        """Run one task synchronously with the same failure isolation."""
        return self._tasks[name].run_once()
