"""Fixed-window rate limiting for the credential-guessing surface."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from drone_analytics.auth.errors import RateLimited

LOGGER = logging.getLogger(__name__)


@dataclass
class RateLimitBucket:
    """Attempt counter for one client key within the current window."""

    count: int
    window_started_at: float


class RateLimiter:
    """Per-key fixed-window counter held in process memory.

    Every call counts, including rejected ones, so hammering a locked key keeps
    it locked until the window rolls over.
    """

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: float,
        sweep_interval: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize limiter policy parameters."""
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1e-3, float(window_seconds))
        self._sweep_interval = max(1, int(sweep_interval))
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        self._lock = Lock()
        self._calls_since_sweep = 0

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _expired(self, bucket: RateLimitBucket, now: float) -> bool:
        return now - bucket.window_started_at >= self._window_seconds

    def _retry_after(self, bucket: RateLimitBucket, now: float) -> int:
        remaining = bucket.window_started_at + self._window_seconds - now
        return max(1, math.ceil(remaining))

    def _record(self, client_key: str) -> tuple[bool, int]:
        """Count one attempt and return (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            self._calls_since_sweep += 1
            if self._calls_since_sweep >= self._sweep_interval:
                self._sweep_locked(now)

            bucket = self._buckets.get(client_key)
            if bucket is None or self._expired(bucket, now):
                bucket = RateLimitBucket(count=0, window_started_at=now)
                self._buckets[client_key] = bucket
            bucket.count += 1

            if bucket.count > self._max_attempts:
                return False, self._retry_after(bucket, now)
            return True, 0

    def allow(self, client_key: str) -> bool:
        """Count an attempt and return whether it is within quota."""
        allowed, _ = self._record(client_key)
        return allowed

    def hit(self, client_key: str) -> None:
        """Count an attempt and raise ``RateLimited`` when over quota."""
        allowed, retry_after = self._record(client_key)
        if not allowed:
            LOGGER.warning(
                "rate_limited", extra={"client_key": client_key, "reason": "quota"}
            )
            raise RateLimited(
                f"Too many attempts. Retry after {retry_after} seconds.",
                retry_after=retry_after,
            )

    def retry_after(self, client_key: str) -> int:
        """Return seconds until the key is allowed again (0 when allowed now)."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(client_key)
            if (
                bucket is None
                or self._expired(bucket, now)
                or bucket.count < self._max_attempts
            ):
                return 0
            return self._retry_after(bucket, now)

    def reset(self, client_key: str) -> None:
        """Forget all attempts recorded for a key."""
        with self._lock:
            self._buckets.pop(client_key, None)

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, bucket in self._buckets.items() if self._expired(bucket, now)]
        for key in expired:
            del self._buckets[key]
        self._calls_since_sweep = 0
        return len(expired)

    def sweep(self) -> int:
        """Drop buckets whose window has elapsed and return how many were removed."""
        now = self._clock()
        with self._lock:
            return self._sweep_locked(now)
