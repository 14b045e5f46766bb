# src/taskqueue/rate_limiter.py — v1
"""Token bucket gate in front of task execution."""

from __future__ import annotations

import math
import time
from typing import Callable


class RateLimiter:
    """Token bucket whose capacity equals its refill rate.

    Refill is lazy and proportional to elapsed time on the injected
    monotonic clock. Never blocks. Rates below one per second still hold
    one whole token so they can admit anything at all.
    """

    def __init__(
        self, rate_per_second: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be > 0")
        self._capacity = max(1.0, float(rate_per_second))
        self._refill_rate = float(rate_per_second)
        self._tokens = self._capacity
        self._clock = clock
        self._last_refill = clock()

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_consume(self) -> bool:
        """Take one token if available."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def time_until_next_token_ms(self) -> int:
        """Minimum wait before ``try_consume`` can succeed."""
        self._refill()
        if self._tokens >= 1:
            return 0
        needed = 1 - self._tokens
        return math.ceil(needed / self._refill_rate * 1000)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_rate)
        self._last_refill = now
