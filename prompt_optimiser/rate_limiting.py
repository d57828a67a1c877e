"""Sliding-window rate limiting for the Prompt Optimiser.

Each client identity gets a fixed-capacity ring buffer holding the
timestamps of its most recently accepted requests. A request is rejected
once ``limit`` accepted requests already fall inside the trailing window.
Idle identities are dropped by a lazy sweep that piggybacks on incoming
requests instead of running on its own timer.

State is process-local; multiple instances each enforce their own budget.

Example:
    >>> limiter = SlidingWindowRateLimiter(limit=20, window_ms=60_000)
    >>> limiter.allow("203.0.113.7")
    True

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from prompt_optimiser.errors import RateLimitedError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
DEFAULT_WINDOW_MS = 60_000


def monotonic_ms() -> int:
    """Default clock: milliseconds from a monotonic source."""
    return time.monotonic_ns() // 1_000_000


@dataclass
class RateLimitEntry:
    """Per-identity ring of accepted-request timestamps.

    Attributes:
        slots: Fixed-size timestamp buffer (milliseconds).
        head: Index the next accepted timestamp is written to.
        count: Number of valid slots, capped at ``len(slots)``.
    """

    slots: list[int]
    head: int = 0
    count: int = 0

    @classmethod
    def with_capacity(cls, capacity: int) -> RateLimitEntry:
        return cls(slots=[0] * capacity)

    @property
    def capacity(self) -> int:
        return len(self.slots)

    def oldest(self) -> int:
        return self.slots[(self.head - self.count) % self.capacity]

    def newest(self) -> int:
        return self.slots[(self.head - 1) % self.capacity]

    def valid(self) -> list[int]:
        """Valid timestamps, oldest first."""
        start = self.head - self.count
        return [self.slots[(start + i) % self.capacity] for i in range(self.count)]

    def record(self, now: int) -> None:
        self.slots[self.head] = now
        self.head = (self.head + 1) % self.capacity
        self.count = min(self.count + 1, self.capacity)


class SlidingWindowRateLimiter:
    """Thread-safe in-memory sliding window rate limiter.

    Args:
        limit: Maximum accepted requests per window (ring capacity).
        window_ms: Window length in milliseconds.
        clock: Zero-argument callable returning the current time in ms.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], int] = monotonic_ms,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")

        self.limit = limit
        self.window_ms = window_ms
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @property
    def sweep_interval_ms(self) -> int:
        return 2 * self.window_ms

    def check(self, key: str) -> tuple[bool, int]:
        """Check and record a request.

        Args:
            key: Client identity.

        Returns:
            Tuple of (allowed, remaining_requests).
        """
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            window_start = now - self.window_ms

            entry = self._entries.get(key)
            if entry is None:
                entry = RateLimitEntry.with_capacity(self.limit)
                self._entries[key] = entry

            # Full ring whose oldest slot is still live: reject without a scan
            if entry.count == self.limit and entry.oldest() > window_start:
                return False, 0

            in_window = sum(1 for t in entry.valid() if t > window_start)
            if in_window >= self.limit:
                return False, 0

            entry.record(now)
            return True, self.limit - in_window - 1

    def allow(self, key: str) -> bool:
        """Return True if the request from ``key`` is accepted."""
        allowed, _ = self.check(key)
        return allowed

    def check_or_raise(self, key: str) -> int:
        """Check rate limit and raise if exceeded.

        Returns:
            Remaining requests.

        Raises:
            RateLimitedError: If rate limit is exceeded.
        """
        allowed, remaining = self.check(key)
        if not allowed:
            raise RateLimitedError(key, self.get_reset_time(key))
        return remaining

    def reset(self, key: str) -> None:
        """Forget all recorded requests for a key."""
        with self._lock:
            self._entries.pop(key, None)

    def get_reset_time(self, key: str) -> float:
        """Seconds until the oldest live request leaves the window."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.count == 0:
                return 0

            window_start = self._clock() - self.window_ms
            live = [t for t in entry.valid() if t > window_start]
            if not live:
                return 0
            return max(0, (live[0] - window_start) / 1000)

    def get_stats(self) -> dict:
        """Get rate limiter statistics."""
        with self._lock:
            return {
                "backend": "memory",
                "active_keys": len(self._entries),
                "limit": self.limit,
                "window_ms": self.window_ms,
            }

    def _maybe_sweep(self, now: int) -> None:
        # Caller holds the lock.
        if now - self._last_sweep < self.sweep_interval_ms:
            return
        self._last_sweep = now
        window_start = now - self.window_ms
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.count == 0 or entry.newest() <= window_start
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Rate limiter sweep evicted {len(expired)} identities")


# Global rate limiter instance
_rate_limiter: Optional[SlidingWindowRateLimiter] = None
_limiter_lock = threading.Lock()


def get_rate_limiter(
    limit: Optional[int] = None,
    window_ms: Optional[int] = None,
) -> SlidingWindowRateLimiter:
    """Get or create the process-wide rate limiter.

    Arguments only apply on first creation.
    """
    global _rate_limiter

    with _limiter_lock:
        if _rate_limiter is None:
            _limit = limit or DEFAULT_LIMIT
            _window = window_ms or DEFAULT_WINDOW_MS
            _rate_limiter = SlidingWindowRateLimiter(_limit, _window)
            logger.info(f"Rate limiter initialized: limit={_limit}/{_window}ms")

        return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the global rate limiter instance."""
    global _rate_limiter
    with _limiter_lock:
        _rate_limiter = None
