"""Circuit Breaker — consecutive-failure trip with a timed recovery probe.

States:
  - CLOSED: normal operation, consecutive failures are counted
  - OPEN: requests are rejected immediately, no network call is attempted
  - HALF_OPEN: one probe request is allowed through;
    success → CLOSED, failure → OPEN again

The OPEN → HALF_OPEN transition is time-gated only: it happens on the first
guard_request() after the cool-down, never because of request volume.

One instance per adapter. Each public adapter call does exactly one
guard_request() and ends with record_success() or record_failure(). A call
that holds the recovery probe and ends without an outcome calls
release_probe() instead.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.types import CircuitBreakerConfig, Provider

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass(frozen=True)
class CircuitBreakerStatus:
    state: CircuitState
    consecutive_failures: int
    last_failure_time: float | None
    seconds_until_probe: float

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "seconds_until_probe": round(self.seconds_until_probe, 3),
        }


class CircuitBreaker:
    """Per-adapter circuit breaker.

    Usage:
        breaker = CircuitBreaker(CircuitBreakerConfig(), Provider.GEMINI)

        is_probe = breaker.guard_request()  # raises AdapterError(CIRCUIT_OPEN) while open
        try:
            result = await call()
        except AdapterError:
            breaker.record_failure()
            raise
        except asyncio.CancelledError:
            if is_probe:
                breaker.release_probe()
            raise
        breaker.record_success()
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        provider: Provider,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = max(1, config.threshold)
        self.reset_timeout_seconds = config.reset_timeout_seconds
        self.provider = provider

        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float | None = None
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def guard_request(self) -> bool:
        """Call before every attempt. Raises immediately while the circuit is open.

        Returns True when this call was admitted as the HALF_OPEN recovery probe.
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - self._last_failure_time
                if elapsed >= self.reset_timeout_seconds:
                    self._state = CircuitState.HALF_OPEN
                    self._probe_in_flight = True
                    logger.info("Circuit for %s transitioning to HALF_OPEN", self.provider.value)
                    return True
                remaining = self.reset_timeout_seconds - elapsed
                raise AdapterError(
                    ErrorKind.CIRCUIT_OPEN,
                    self.provider,
                    f'Circuit breaker OPEN for provider "{self.provider.value}" after '
                    f"{self._consecutive_failures} consecutive failures. "
                    f"Retry in {math.ceil(remaining)}s.",
                    http_status=503,
                    retry_after_seconds=remaining,
                )

            # HALF_OPEN: only one probe at a time
            if self._probe_in_flight:
                raise AdapterError(
                    ErrorKind.CIRCUIT_OPEN,
                    self.provider,
                    f'Circuit breaker HALF_OPEN for provider "{self.provider.value}": '
                    "recovery probe in progress.",
                    http_status=503,
                )
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        """Reset the failure counter and close the circuit."""
        with self._lock:
            self._consecutive_failures = 0
            self._probe_in_flight = False
            if self._state != CircuitState.CLOSED:
                logger.info("Circuit for %s CLOSED (recovered)", self.provider.value)
                self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Count a failure. May trip the circuit to OPEN."""
        with self._lock:
            self._consecutive_failures += 1
            self._last_failure_time = self._clock()
            self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                # Probe failed: reopen without waiting for the threshold
                self._state = CircuitState.OPEN
                logger.warning("Circuit for %s re-OPENED (probe failed)", self.provider.value)
                return

            if self._consecutive_failures >= self.threshold and self._state != CircuitState.OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit for %s OPENED after %d consecutive failures",
                    self.provider.value,
                    self._consecutive_failures,
                )

    def release_probe(self) -> None:
        """Give back the probe slot after a probe call ended without an outcome.

        Only the caller whose guard_request() returned True may call this.
        """
        with self._lock:
            self._probe_in_flight = False

    def status(self) -> CircuitBreakerStatus:
        with self._lock:
            seconds_until_probe = 0.0
            if self._state == CircuitState.OPEN and self._last_failure_time is not None:
                seconds_until_probe = max(
                    self.reset_timeout_seconds - (self._clock() - self._last_failure_time),
                    0.0,
                )
            return CircuitBreakerStatus(
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                last_failure_time=self._last_failure_time,
                seconds_until_probe=seconds_until_probe,
            )

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._last_failure_time = None
            self._probe_in_flight = False
        logger.info("Circuit for %s manually RESET", self.provider.value)
