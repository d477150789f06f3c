"""Deadline primitives shared by every provider call and the polling loop."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.types import Provider

T = TypeVar("T")


@dataclass(frozen=True)
class Deadline:
    """An absolute point in (monotonic) time, fixed once at the start of an operation."""

    expires_at: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> Deadline:
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.clock() >= self.expires_at


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    *,
    provider: Provider,
    operation: str,
) -> T:
    """Run an awaitable under a timer in the current task.

    Raises AdapterError(TIMEOUT) when the timer wins. Outside cancellation
    always propagates, even when the awaitable finishes in the same tick.
    """
    try:
        async with asyncio.timeout(max(timeout_seconds, 0.0)):
            return await awaitable
    except TimeoutError:
        raise AdapterError(
            ErrorKind.TIMEOUT,
            provider,
            f"{operation} timed out after {timeout_seconds:.1f}s",
        ) from None
