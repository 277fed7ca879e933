"""Simple in-memory rate limiting utilities."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Protocol


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimitBackend(Protocol):
    """Counter-with-expiry interface.

    The in-memory implementation below is process-local. A multi-process
    deployment needs a shared implementation of this protocol for a global
    limit.
    """

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision: ...

    def reset(self, key: str) -> None: ...

    def prune(self) -> int: ...


@dataclass
class _Bucket:
    timestamps: Deque[float]


class InMemoryRateLimiter:
    """Sliding-window rate limiter suitable for single-node deployments."""

    def __init__(self, clock: Callable[[], float] = time.time, prune_every: int = 1000) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._windows: Dict[str, int] = {}
        self._clock = clock
        self._prune_every = prune_every
        self._calls = 0

    @staticmethod
    def _trim(bucket: _Bucket, cutoff: float) -> None:
        while bucket.timestamps and bucket.timestamps[0] <= cutoff:
            bucket.timestamps.popleft()

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - window_seconds

        with self._lock:
            self._calls += 1
            if self._calls % self._prune_every == 0:
                self._prune_locked(now)

            bucket = self._buckets.setdefault(key, _Bucket(timestamps=deque()))
            self._windows[key] = window_seconds
            self._trim(bucket, cutoff)

            if len(bucket.timestamps) >= limit:
                oldest = bucket.timestamps[0]
                retry_after = max(1, math.ceil(oldest + window_seconds - now))
                return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

            bucket.timestamps.append(now)
            return RateLimitDecision(allowed=True, remaining=max(0, limit - len(bucket.timestamps)))

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        return self.hit(key, limit, window_seconds).allowed

    def remaining(self, key: str, limit: int, window_seconds: int) -> int:
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return limit
            self._trim(bucket, cutoff)
            return max(0, limit - len(bucket.timestamps))

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)
            self._windows.pop(key, None)

    def prune(self) -> int:
        """Drop buckets whose whole window has elapsed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        removed = 0
        for key in list(self._buckets):
            bucket = self._buckets[key]
            self._trim(bucket, now - self._windows.get(key, 0))
            if not bucket.timestamps:
                del self._buckets[key]
                self._windows.pop(key, None)
                removed += 1
        return removed


rate_limiter = InMemoryRateLimiter()
