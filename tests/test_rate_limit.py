"""Tests for the per-IP token-bucket RateLimiter."""

import threading
import unittest

from app.services.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()

    def test_burst_then_reject(self) -> None:
        limiter = RateLimiter(rate=1.0, burst=10, clock=self.clock)
        results = [limiter.allow("1.2.3.4") for _ in range(11)]
        self.assertEqual(results, [True] * 10 + [False])

    def test_refill_over_time(self) -> None:
        limiter = RateLimiter(rate=0.5, burst=3, clock=self.clock)
        for _ in range(3):
            self.assertTrue(limiter.allow("ip"))
        self.assertFalse(limiter.allow("ip"))

        self.clock.now = 1.0
        self.assertFalse(limiter.allow("ip"))
        self.clock.now = 2.0
        self.assertTrue(limiter.allow("ip"))
        self.assertFalse(limiter.allow("ip"))

    def test_refill_capped_at_burst(self) -> None:
        limiter = RateLimiter(rate=1.0, burst=2, clock=self.clock)
        limiter.allow("ip")
        self.clock.now = 1000.0
        results = [limiter.allow("ip") for _ in range(3)]
        self.assertEqual(results, [True, True, False])

    def test_clients_are_independent(self) -> None:
        limiter = RateLimiter(rate=1.0, burst=1, clock=self.clock)
        self.assertTrue(limiter.allow("a"))
        self.assertFalse(limiter.allow("a"))
        self.assertTrue(limiter.allow("b"))

    def test_rejection_is_logged(self) -> None:
        limiter = RateLimiter(rate=1.0, burst=1, clock=self.clock, name="auth")
        limiter.allow("ip")
        with self.assertLogs("app.services.rate_limit", level="WARNING"):
            limiter.allow("ip")

    def test_sweep_removes_idle_buckets(self) -> None:
        limiter = RateLimiter(rate=1.0, burst=5, idle_seconds=180, clock=self.clock)
        limiter.allow("old")
        self.clock.now = 100.0
        limiter.allow("recent")

        self.clock.now = 200.0
        self.assertEqual(limiter.sweep(), 1)
        self.assertEqual(len(limiter), 1)

        self.clock.now = 1000.0
        self.assertEqual(limiter.sweep(), 1)
        self.assertEqual(len(limiter), 0)

    def test_swept_client_starts_with_full_bucket(self) -> None:
        limiter = RateLimiter(rate=0.001, burst=2, idle_seconds=10, clock=self.clock)
        limiter.allow("ip")
        limiter.allow("ip")
        self.assertFalse(limiter.allow("ip"))
        self.clock.now = 11.0
        limiter.sweep()
        self.assertTrue(limiter.allow("ip"))
        self.assertTrue(limiter.allow("ip"))

    def test_invalid_parameters(self) -> None:
        with self.assertRaises(ValueError):
            RateLimiter(rate=0, burst=1)
        with self.assertRaises(ValueError):
            RateLimiter(rate=1, burst=0)


class TestRateLimiterConcurrency(unittest.TestCase):
    def test_concurrent_first_requests_share_one_bucket(self) -> None:
        """Many threads hitting a new IP at once: exactly burst requests get through."""
        limiter = RateLimiter(rate=0.0001, burst=5)
        barrier = threading.Barrier(20)
        allowed: list[bool] = []
        lock = threading.Lock()

        def hit() -> None:
            barrier.wait()
            result = limiter.allow("10.0.0.1")
            with lock:
                allowed.append(result)

        threads = [threading.Thread(target=hit) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual(len(allowed), 20)
        self.assertEqual(sum(allowed), 5)
        self.assertEqual(len(limiter), 1)


if __name__ == "__main__":
    unittest.main()
