"""
Per-(actor, action) fixed-window rate limiting.

Each key owns a :class:`RateLimitBucket` holding the wall-clock second it
counts for and the admissions in that second. A bucket is guarded by its
own lock, so concurrent calls for one key are serialized while different
keys never contend; the registry lock is only taken to create or retire a
bucket.

Examples
--------
>>> limiter = RateLimiter(cap=5)
>>> [limiter.allow("alice", "sell") for _ in range(6)]
[True, True, True, True, True, False]
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ecoplane.logging import DEEP_DEBUG, getLogger
from ecoplane.typing import Clock

__all__ = ["RateLimitBucket", "RateLimiter"]

log = getLogger(__name__)


@dataclass(slots=True)
class RateLimitBucket:
    epoch_second: int
    count: int = 0
    retired: bool = False
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )


class RateLimiter:
    """
    Fixed one-second window admission control.

    Parameters
    ----------
    cap : int or callable
        Admissions per key and second. A callable is re-read on every call
        so a configuration reload takes effect immediately. Values below 1
        behave as 1.
    clock : callable, optional
        Wall-clock source in seconds, ``time.time`` by default.
    """

    def __init__(
        self,
        cap: int | Callable[[], int] = 5,
        clock: Clock | None = None,
    ) -> None:
        self._cap = cap
        self._clock: Clock = clock or time.time
        self._buckets: dict[tuple[str, str], RateLimitBucket] = {}
        self._registry_lock = threading.Lock()
        self.rejected = 0

    @property
    def cap(self) -> int:
        value = self._cap() if callable(self._cap) else self._cap
        return max(1, int(value))

    def _second(self) -> int:
        return int(self._clock() // 1)

    def _bucket(self, key: tuple[str, str]) -> RateLimitBucket:
        bucket = self._buckets.get(key)
        if bucket is None or bucket.retired:
            with self._registry_lock:
                bucket = self._buckets.get(key)
                if bucket is None or bucket.retired:
                    bucket = RateLimitBucket(epoch_second=self._second())
                    self._buckets[key] = bucket
        return bucket

    def allow(self, actor: str, action: str) -> bool:
        """
        Admit or reject one operation of *actor* for *action*.

        Returns
        -------
        bool
            True when the operation fits into the current second's budget.
        """
        key = (actor, action)
        cap = self.cap
        while True:
            bucket = self._bucket(key)
            with bucket.lock:
                if bucket.retired:
                    continue
                second = self._second()
                if second != bucket.epoch_second:
                    bucket.epoch_second = second
                    bucket.count = 0
                if bucket.count >= cap:
                    self.rejected += 1
                    if log.isEnabledFor(DEEP_DEBUG):
                        log.deep(f"  rate limited {actor}:{action} ({cap}/s)")
                    return False
                bucket.count += 1
                return True

    def remaining(self, actor: str, action: str) -> int:
        """Admissions left for the key in the current second."""
        bucket = self._buckets.get((actor, action))
        if bucket is None:
            return self.cap
        with bucket.lock:
            if bucket.retired or bucket.epoch_second != self._second():
                return self.cap
            return max(0, self.cap - bucket.count)

    def reset(self, actor: str | None = None) -> None:
        """Forget every bucket, or only those of *actor*."""
        with self._registry_lock:
            keys = [k for k in self._buckets if actor is None or k[0] == actor]
            for key in keys:
                bucket = self._buckets.pop(key)
                with bucket.lock:
                    bucket.retired = True

    def purge_stale(self, max_age_seconds: float = 60.0) -> int:
        """
        Drop buckets idle for more than *max_age_seconds*.

        Buckets whose lock is currently held are skipped. Returns the number
        of buckets removed.
        """
        horizon = self._second() - max_age_seconds
        removed = 0
        with self._registry_lock:
            for key, bucket in list(self._buckets.items()):
                if not bucket.lock.acquire(blocking=False):
                    continue
                try:
                    if bucket.epoch_second < horizon:
                        bucket.retired = True
                        del self._buckets[key]
                        removed += 1
                finally:
                    bucket.lock.release()
        if removed:
            log.debug("Purged %d idle rate-limit bucket(s)", removed)
        return removed

    def __len__(self) -> int:
        return len(self._buckets)
