"""Per-client-IP token-bucket rate limiting."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """Tokens refill continuously at rate per second up to burst."""

    tokens: float
    last_refill: float
    last_seen: float

    def consume(self, now: float, rate: float, burst: int) -> bool:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(burst), self.tokens + elapsed * rate)
        self.last_refill = now
        self.last_seen = now
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


class RateLimiter:
    """
    Map of client IP to TokenBucket, guarded by one lock.

    A new IP starts with a full bucket. Buckets untouched for idle_seconds are
    dropped by sweep(), which the scheduler calls periodically.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        idle_seconds: float = 180,
        clock: Callable[[], float] = time.monotonic,
        name: str = "default",
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be greater than 0")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = rate
        self.burst = burst
        self.idle_seconds = idle_seconds
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, TokenBucket] = {}

    def allow(self, ip: str) -> bool:
        """Consume one token for ip; False means the request must be rejected."""
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(ip)
            if bucket is None:
                bucket = TokenBucket(tokens=float(self.burst), last_refill=now, last_seen=now)
                self._buckets[ip] = bucket
            allowed = bucket.consume(now, self.rate, self.burst)
        if not allowed:
            logger.warning("Rate limit exceeded limiter=%s client=%s", self.name, ip)
        return allowed

    def sweep(self) -> int:
        """Drop buckets idle longer than idle_seconds; returns how many were removed."""
        with self._lock:
            cutoff = self._clock() - self.idle_seconds
            idle = [ip for ip, bucket in self._buckets.items() if bucket.last_seen < cutoff]
            for ip in idle:
                del self._buckets[ip]
        if idle:
            logger.debug("Swept %d idle rate-limit buckets limiter=%s", len(idle), self.name)
        return len(idle)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
