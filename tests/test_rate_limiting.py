"""Tests for the sliding window rate limiter.

Antagon Inc. | CAGE: 17E75
"""

import threading

import pytest

from prompt_optimiser.errors import RateLimitedError
from prompt_optimiser.rate_limiting import (
    RateLimitEntry,
    SlidingWindowRateLimiter,
    get_rate_limiter,
    reset_rate_limiter,
)


class TestRateLimitEntry:
    """Tests for the timestamp ring."""

    def test_record_wraps_and_caps_count(self):
        entry = RateLimitEntry.with_capacity(3)
        for t in (1, 2, 3, 4):
            entry.record(t)

        assert entry.count == 3
        assert entry.oldest() == 2
        assert entry.newest() == 4
        assert sorted(entry.valid()) == [2, 3, 4]

    def test_partial_ring(self):
        entry = RateLimitEntry.with_capacity(5)
        entry.record(10)
        entry.record(20)

        assert entry.count == 2
        assert entry.oldest() == 10
        assert entry.newest() == 20


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    def test_allows_within_limit(self, clock):
        limiter = SlidingWindowRateLimiter(limit=5, window_ms=60_000, clock=clock)

        for i in range(5):
            allowed, remaining = limiter.check("203.0.113.7")
            assert allowed is True
            assert remaining == 4 - i

    def test_twenty_first_request_rejected(self, limiter):
        for _ in range(20):
            assert limiter.allow("203.0.113.7") is True

        allowed, remaining = limiter.check("203.0.113.7")
        assert allowed is False
        assert remaining == 0

    def test_different_keys_independent(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
        limiter.check("key1")
        limiter.check("key1")

        allowed, remaining = limiter.check("key2")
        assert allowed is True
        assert remaining == 1

    def test_sliding_window(self, clock):
        """Oldest request leaves the window exactly W after it was accepted."""
        limiter = SlidingWindowRateLimiter(limit=2, window_ms=1_000, clock=clock)
        limiter.check("test_key")
        clock.advance(500)
        limiter.check("test_key")

        assert limiter.allow("test_key") is False

        clock.advance(499)
        assert limiter.allow("test_key") is False

        clock.advance(1)
        assert limiter.allow("test_key") is True
        # The second request is still live, so the ring is full again
        assert limiter.allow("test_key") is False

    def test_rejections_are_not_recorded(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_ms=1_000, clock=clock)
        limiter.check("k")
        for _ in range(10):
            clock.advance(50)
            assert limiter.allow("k") is False

        clock.advance(500)
        assert limiter.allow("k") is True

    def test_check_or_raise(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
        assert limiter.check_or_raise("k") == 1
        clock.advance(10_000)
        assert limiter.check_or_raise("k") == 0

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.check_or_raise("k")

        assert exc_info.value.identity == "k"
        assert exc_info.value.retry_after == pytest.approx(50.0)
        assert exc_info.value.status_code == 429

    def test_reset(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
        limiter.check("k")
        limiter.check("k")
        assert limiter.allow("k") is False

        limiter.reset("k")
        assert limiter.allow("k") is True

    def test_get_reset_time_unknown_key(self, limiter):
        assert limiter.get_reset_time("nobody") == 0

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(limit=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_ms=0)

    def test_get_stats(self, limiter):
        limiter.check("a")
        limiter.check("b")

        stats = limiter.get_stats()
        assert stats["active_keys"] == 2
        assert stats["limit"] == 20
        assert stats["window_ms"] == 60_000


class TestSweep:
    """Tests for the lazy eviction of idle identities."""

    def test_sweep_evicts_expired_identities(self, clock):
        limiter = SlidingWindowRateLimiter(limit=3, window_ms=1_000, clock=clock)
        limiter.check("idle")

        clock.advance(2_000)
        limiter.check("active")

        assert limiter.get_stats()["active_keys"] == 1

    def test_sweep_waits_for_interval(self, clock):
        limiter = SlidingWindowRateLimiter(limit=3, window_ms=1_000, clock=clock)
        limiter.check("idle")

        clock.advance(1_500)
        limiter.check("active")

        # Expired, but the sweep interval (2W) has not elapsed yet
        assert limiter.get_stats()["active_keys"] == 2

    def test_sweep_keeps_live_identities(self, clock):
        limiter = SlidingWindowRateLimiter(limit=3, window_ms=1_000, clock=clock)
        limiter.check("a")
        clock.advance(1_900)
        limiter.check("b")
        clock.advance(100)
        limiter.check("c")

        stats = limiter.get_stats()
        assert stats["active_keys"] == 2

    def test_evicted_identity_starts_fresh(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_ms=1_000, clock=clock)
        limiter.check("k")
        clock.advance(2_000)

        allowed, remaining = limiter.check("k")
        assert allowed is True
        assert remaining == 0


class TestThreadSafety:
    """Concurrent access never admits more than the limit."""

    def test_concurrent_checks(self, clock):
        limiter = SlidingWindowRateLimiter(limit=50, window_ms=60_000, clock=clock)
        results: list[bool] = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(10):
                allowed = limiter.allow("shared")
                with results_lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 100
        assert sum(results) == 50


class TestGlobalRateLimiter:
    """Tests for the process-wide limiter."""

    def setup_method(self):
        reset_rate_limiter()

    def teardown_method(self):
        reset_rate_limiter()

    def test_singleton(self):
        first = get_rate_limiter()
        second = get_rate_limiter()
        assert first is second
        assert first.limit == 20
        assert first.window_ms == 60_000

    def test_arguments_apply_on_first_creation(self):
        limiter = get_rate_limiter(limit=5, window_ms=1_000)
        assert limiter.limit == 5
        assert get_rate_limiter(limit=99).limit == 5

    def test_reset(self):
        first = get_rate_limiter()
        reset_rate_limiter()
        assert get_rate_limiter() is not first
