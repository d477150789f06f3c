"""Sliding-window rate limiter — one instance per adapter.

Keeps the timestamps of admitted requests inside a trailing window. When the
window is full the limiter either fails fast (RATE_LIMITED) or waits until the
oldest entry leaves the window, bounded by ``max_wait_seconds``
(RATE_LIMIT_TIMEOUT).

Thread-safe for asyncio via asyncio.Lock; the lock is never held while sleeping.
State lives in memory only; every process starts with an empty window.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.types import Provider, RateLimitConfig

logger = logging.getLogger(__name__)

# Floor for a single wait so a stale clock reading cannot cause a busy loop
MIN_SLEEP_SECONDS = 0.05


@dataclass(frozen=True)
class RateLimiterStatus:
    current_count: int  # Requests in the current window
    max_requests: int
    seconds_until_slot: float  # 0 when a slot is free now
    is_allowed: bool

    def to_dict(self) -> dict:
        return {
            "current_count": self.current_count,
            "max_requests": self.max_requests,
            "seconds_until_slot": round(self.seconds_until_slot, 3),
            "is_allowed": self.is_allowed,
        }


class SlidingWindowRateLimiter:
    """Sliding-window admission control.

    Usage:
        limiter = SlidingWindowRateLimiter(RateLimitConfig(max_requests=20, window_seconds=10), Provider.KIEAI)
        await limiter.acquire()  # waits for a slot (or raises)
    """

    def __init__(
        self,
        config: RateLimitConfig,
        provider: Provider,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if config.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if config.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = config.max_requests
        self.window_seconds = config.window_seconds
        self.wait_for_slot = config.wait_for_slot
        self.max_wait_seconds = config.max_wait_seconds
        self.provider = provider

        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        """Drop timestamps that have left the window."""
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _seconds_until_slot(self, now: float) -> float:
        if len(self._timestamps) < self.max_requests:
            return 0.0
        return max(self._timestamps[0] + self.window_seconds - now, 0.0)

    async def acquire(self) -> None:
        """Consume one slot, waiting for it if configured to."""
        started = self._clock()

        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)

                # Fast path: slot available
                if len(self._timestamps) < self.max_requests:
                    self._timestamps.append(now)
                    return

                if not self.wait_for_slot:
                    raise AdapterError(
                        ErrorKind.RATE_LIMITED,
                        self.provider,
                        f"Rate limit exceeded: {self.max_requests} requests per "
                        f"{self.window_seconds:g}s. Try again later.",
                        http_status=429,
                        retry_after_seconds=self._seconds_until_slot(now),
                    )

                until_slot = self._seconds_until_slot(now)
                in_window = len(self._timestamps)

            elapsed = self._clock() - started
            if elapsed >= self.max_wait_seconds:
                raise AdapterError(
                    ErrorKind.RATE_LIMIT_TIMEOUT,
                    self.provider,
                    f"Rate limit: waited {elapsed:.1f}s but no slot opened "
                    f"(max {self.max_requests}/{self.window_seconds:g}s).",
                    http_status=429,
                )

            sleep_for = min(max(until_slot, MIN_SLEEP_SECONDS), self.max_wait_seconds - elapsed)
            logger.info(
                "Rate limit reached for %s (%d/%d), waiting %.2fs",
                self.provider.value,
                in_window,
                self.max_requests,
                sleep_for,
            )
            await self._sleep(sleep_for)

    def status(self) -> RateLimiterStatus:
        """Current window usage. Does not consume or drop anything."""
        now = self._clock()
        cutoff = now - self.window_seconds
        live = [ts for ts in self._timestamps if ts > cutoff]
        is_allowed = len(live) < self.max_requests
        seconds_until_slot = 0.0
        if not is_allowed:
            seconds_until_slot = max(live[0] + self.window_seconds - now, 0.0)
        return RateLimiterStatus(
            current_count=len(live),
            max_requests=self.max_requests,
            seconds_until_slot=seconds_until_slot,
            is_allowed=is_allowed,
        )

    def reset(self) -> None:
        self._timestamps.clear()
