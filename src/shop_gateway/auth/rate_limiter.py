"""In-memory fixed window rate limiter."""

import math
import time
from dataclasses import dataclass
from threading import Lock

DEFAULT_WINDOW_SECONDS = 15 * 60
DEFAULT_MAX_REQUESTS = 100


@dataclass
class _Bucket:
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single ``admit`` call."""

    allowed: bool
    limit: int
    window_seconds: int
    remaining: int
    retry_after: int
    reset_after: int


class FixedWindowRateLimiter:
    """Fixed window request counter keyed by shop domain or client address.

    Every call to :meth:`admit` counts, whether the request is later
    allowed, denied, or fails downstream. Thread-safe via Lock.
    Single-instance only.
    """

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
    ) -> None:
        self._window = window_seconds
        self._limit = max_requests
        self._buckets: dict[str, _Bucket] = {}
        self._lock = Lock()

    @property
    def window_seconds(self) -> int:
        return self._window

    @property
    def max_requests(self) -> int:
        return self._limit

    def admit(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` and decide whether it may proceed.

        Args:
            key: Rate limit key, see ``api.middleware.rate_limit_key``.

        Returns:
            Decision with remaining budget and seconds until the window
            resets. ``retry_after`` is 0 when allowed.
        """
        now = time.monotonic()

        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket.window_start + self._window:
                bucket = _Bucket(window_start=now)
                self._buckets[key] = bucket
            bucket.count += 1
            count = bucket.count
            reset_at = bucket.window_start + self._window

        reset_after = max(math.ceil(reset_at - now), 1)
        allowed = count <= self._limit
        return RateLimitDecision(
            allowed=allowed,
            limit=self._limit,
            window_seconds=self._window,
            remaining=max(self._limit - count, 0),
            retry_after=0 if allowed else reset_after,
            reset_after=reset_after,
        )

    def cleanup(self) -> int:
        """Remove all expired buckets. Call periodically.

        Returns:
            Number of keys cleaned up.
        """
        now = time.monotonic()

        with self._lock:
            expired = [
                key
                for key, bucket in self._buckets.items()
                if now >= bucket.window_start + self._window
            ]
            for key in expired:
                del self._buckets[key]

        return len(expired)
