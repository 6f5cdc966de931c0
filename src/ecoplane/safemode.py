"""
Safe-mode circuit breaker.

The breaker keeps two independent signals, each behind its own lock:

- the last ``safe_mode_sample_size`` backend probe latencies (ring buffer),
  judged by their **median** so a single slow probe cannot trip it;
- the timestamps of critical errors within the last
  ``safe_mode_error_window_seconds``, pruned on every access.

Safe mode activates when the median exceeds the latency threshold or when
the error window holds at least ``safe_mode_error_threshold`` entries. It
deactivates only from an evaluation (after each latency sample and at the
end of every probe pass) that finds the median back within the threshold
and the error window empty. Flips are edge-triggered:
only an actual change is logged and published.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any

from ecoplane.config import Config
from ecoplane.core.notifications import NotificationBus, SafeModeChanged
from ecoplane.core.scheduler import Scheduler
from ecoplane.logging import getLogger
from ecoplane.systems.statistics import median_of
from ecoplane.typing import Clock

__all__ = ["SafeModeBreaker", "SafeModeState"]

log = getLogger(__name__)

PROBE_TASK = "safe-mode-probe"


@dataclass(slots=True)
class SafeModeState:
    """Breaker-owned state; never handed out mutably."""

    sample_size: int = 20
    active: bool = False
    latencies: deque[float] = field(default_factory=deque)
    errors: deque[float] = field(default_factory=deque)
    reason: str = ""
    changed_at: float | None = None

    def __post_init__(self) -> None:
        self.latencies = deque(self.latencies, maxlen=self.sample_size)


class SafeModeBreaker:
    """
    Backend-health circuit breaker.

    Parameters
    ----------
    config : Config
        Reads the ``safe_mode_*`` keys at the time of use.
    probe : callable, optional
        Trivial backend round trip (e.g. ``SELECT 1``). Without a probe the
        breaker only reacts to recorded errors and latencies.
    bus : NotificationBus, optional
        Receives :class:`SafeModeChanged` on every flip.
    clock : callable, optional
        Wall-clock source in seconds.
    """

    def __init__(
        self,
        config: Config,
        probe: Callable[[], Any] | None = None,
        bus: NotificationBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self._probe_fn = probe
        self._bus = bus
        self._clock: Clock = clock or time.time
        self._state = SafeModeState(sample_size=config.safe_mode_sample_size)
        self._latency_lock = threading.Lock()
        self._error_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._scheduler: Scheduler | None = None
        self._owns_scheduler = False

    # lifecycle
    # ---------------------------------------------------------------------
    def initialize(self, scheduler: Scheduler | None = None) -> None:
        """
        Start periodic probing.

        The probe task is registered on *scheduler*; without one the breaker
        runs a private scheduler. Disabled breakers only log and return.
        """
        if not self.config.safe_mode_enabled:
            log.info("Safe mode monitoring disabled by configuration")
            return
        if self._scheduler is not None:
            return
        if scheduler is None:
            scheduler = Scheduler()
            self._owns_scheduler = True
        self._scheduler = scheduler
        scheduler.add(
            PROBE_TASK, lambda: self.config.safe_mode_probe_interval_seconds, self.probe
        )
        if self._owns_scheduler:
            scheduler.start()
        log.info(
            "Safe mode monitoring every %.0fs (latency > %.0fms or %d errors/%.0fs)",
            self.config.safe_mode_probe_interval_seconds,
            self.config.safe_mode_latency_threshold_ms,
            self.config.safe_mode_error_threshold,
            self.config.safe_mode_error_window_seconds,
        )

    def shutdown(self) -> None:
        """Stop probing and leave safe mode."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            if self._owns_scheduler:
                scheduler.stop()
            else:
                scheduler.remove(PROBE_TASK)
        self._owns_scheduler = False
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._set_active(False, "shutdown")

    def reconfigure(self, config: Config) -> None:
        """Adopt a reloaded config, resizing the latency buffer if needed."""
        self.config = config
        with self._latency_lock:
            if self._state.latencies.maxlen != config.safe_mode_sample_size:
                self._state.sample_size = config.safe_mode_sample_size
                self._state.latencies = deque(
                    self._state.latencies, maxlen=config.safe_mode_sample_size
                )

    # public API
    # ---------------------------------------------------------------------
    def is_active(self) -> bool:
        return self._state.active

    def record_critical_error(self) -> None:
        """Count one critical error; activates on an error spike."""
        now = self._clock()
        with self._error_lock:
            self._state.errors.append(now)
            count = self._prune_errors(now)
        if count >= self.config.safe_mode_error_threshold:
            self._set_active(True, f"{count} critical errors within the error window")

    def record_latency(self, latency_ms: float) -> None:
        """Add a latency sample and re-evaluate the breaker."""
        with self._latency_lock:
            self._state.latencies.append(float(latency_ms))
        self._evaluate()

    def probe(self) -> float | None:
        """
        Run one backend probe with the configured timeout.

        Returns the measured latency in milliseconds, or None when no probe
        is configured or the probe raised. Every pass ends with a breaker
        evaluation, so an expired error spike clears even without samples.
        """
        if self._probe_fn is None:
            self._evaluate()
            return None
        timeout = self.config.safe_mode_probe_timeout_seconds
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="ecoplane-probe"
            )
        start = time.perf_counter()
        future = self._executor.submit(self._probe_fn)
        try:
            future.result(timeout=timeout)
        except FutureTimeout:
            log.warning("Backend probe exceeded %.1fs timeout", timeout)
            # the stuck worker is abandoned; the next probe gets a fresh one
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            self.record_critical_error()
            self.record_latency(timeout * 1000.0)
            return timeout * 1000.0
        except Exception as exc:
            log.warning("Backend probe failed: %s", exc)
            self.record_critical_error()
            self._evaluate()
            return None
        latency_ms = (time.perf_counter() - start) * 1000.0
        log.debug("Backend probe latency %.1fms", latency_ms)
        self.record_latency(latency_ms)
        return latency_ms

    def median_latency(self) -> float:
        with self._latency_lock:
            return median_of(self._state.latencies)

    def error_count(self) -> int:
        now = self._clock()
        with self._error_lock:
            return self._prune_errors(now)

    def status(self) -> dict[str, Any]:
        """Read-only view of the breaker for diagnostics and read surfaces."""
        with self._latency_lock:
            samples = len(self._state.latencies)
        return {
            "active": self._state.active,
            "reason": self._state.reason,
            "changed_at": self._state.changed_at,
            "median_latency_ms": self.median_latency(),
            "latency_samples": samples,
            "errors_in_window": self.error_count(),
        }

    # helpers
    # ---------------------------------------------------------------------
    def _prune_errors(self, now: float) -> int:
        horizon = now - self.config.safe_mode_error_window_seconds
        errors = self._state.errors
        while errors and errors[0] < horizon:
            errors.popleft()
        return len(errors)

    def _evaluate(self) -> None:
        median = self.median_latency()
        threshold = self.config.safe_mode_latency_threshold_ms
        if median > threshold:
            self._set_active(
                True, f"median latency {median:.0f}ms above {threshold:.0f}ms"
            )
            return
        errors = self.error_count()
        if errors >= self.config.safe_mode_error_threshold:
            self._set_active(True, f"{errors} critical errors within the error window")
        elif errors == 0:
            self._set_active(False, f"median latency {median:.0f}ms, no recent errors")

    def _set_active(self, active: bool, reason: str) -> bool:
        with self._state_lock:
            if self._state.active == active:
                return False
            now = self._clock()
            self._state.active = active
            self._state.reason = reason
            self._state.changed_at = now
        if active:
            log.warning("Safe mode ACTIVATED: %s", reason)
        else:
            log.info("Safe mode deactivated: %s", reason)
        if self._bus is not None:
            self._bus.publish(SafeModeChanged(active=active, reason=reason, at=now))
        return True
