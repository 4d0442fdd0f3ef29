"""Per-user token bucket rate limiting for state-changing git actions."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class TokenBucket:
    """Token bucket rate limiter."""

    tokens: float
    last_refill: float
    capacity: float
    refill_rate: float  # tokens per second

    def try_consume(self, now: float) -> bool:
        """Try to consume one token. Returns True if allowed."""
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    @property
    def retry_after(self) -> float:
        """Seconds until a token is available."""
        if self.tokens >= 1.0:
            return 0.0
        if self.refill_rate <= 0:
            return float("inf")
        return (1.0 - self.tokens) / self.refill_rate


class RateLimiter:
    """Per-user token buckets keyed by user id.

    Idle buckets are dropped every ``cleanup_interval`` checks.
    """

    def __init__(
        self,
        burst: int = 30,
        per_minute: float = 100.0,
        cleanup_interval: int = 1000,
        stale_after: float = 3600.0,
    ):
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._burst = burst
        self._per_sec = per_minute / 60.0
        self._cleanup_interval = cleanup_interval
        self._stale_after = stale_after
        self._checks = 0

    def check(self, key: str) -> tuple[bool, float]:
        """Consume a token for *key*. Returns (allowed, retry_after)."""
        now = time.time()
        with self._lock:
            self._checks += 1
            if self._checks % self._cleanup_interval == 0:
                self._drop_stale(now, self._stale_after)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = TokenBucket(
                    tokens=float(self._burst),
                    last_refill=now,
                    capacity=float(self._burst),
                    refill_rate=self._per_sec,
                )
            if bucket.try_consume(now):
                return True, 0.0
            return False, bucket.retry_after

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def _drop_stale(self, now: float, max_age: float) -> int:
        """Drop idle buckets. Caller holds ``_lock``."""
        stale = [k for k, b in self._buckets.items() if now - b.last_refill > max_age]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def cleanup_stale(self, max_age: float = 3600.0) -> int:
        """Drop buckets idle for longer than *max_age* seconds."""
        now = time.time()
        with self._lock:
            return self._drop_stale(now, max_age)
