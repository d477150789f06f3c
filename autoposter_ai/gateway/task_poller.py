"""Create-task / poll-until-terminal protocol for async-style providers.

The poller is provider-agnostic: it is given a ``fetch_status`` coroutine that
performs one status check and maps the provider's envelope to a TaskStatus.

Budget:
  - at most ``max_attempts`` status checks, ``interval_seconds`` apart
  - an absolute deadline fixed when polling starts; every check is bounded by
    min(request_timeout_seconds, time left until the deadline)

Status checks are not rate limited: their volume follows provider latency,
not caller request volume.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.timeouts import Deadline, with_timeout
from autoposter_ai.gateway.types import Provider, TaskState, TaskStatus

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[TaskStatus]]


class TaskPoller:
    def __init__(
        self,
        fetch_status: FetchStatus,
        *,
        provider: Provider,
        interval_seconds: float,
        max_attempts: int,
        request_timeout_seconds: float,
        deadline_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._fetch_status = fetch_status
        self.provider = provider
        self.interval_seconds = interval_seconds
        self.max_attempts = max(1, max_attempts)
        self.request_timeout_seconds = request_timeout_seconds
        self.deadline_seconds = deadline_seconds
        self._clock = clock
        self._sleep = sleep

    async def poll_until_done(self, task_id: str) -> TaskStatus:
        """Poll until SUCCESS (returned) or FAIL (TASK_FAILED), else TASK_TIMEOUT."""
        deadline = Deadline.after(self.deadline_seconds, clock=self._clock)
        last_error: AdapterError | None = None

        for attempt in range(1, self.max_attempts + 1):
            if deadline.expired:
                raise AdapterError(
                    ErrorKind.TASK_TIMEOUT,
                    self.provider,
                    f"Task {task_id} did not finish within {self.deadline_seconds:g}s",
                )

            try:
                status = await with_timeout(
                    self._fetch_status(task_id),
                    min(self.request_timeout_seconds, deadline.remaining()),
                    provider=self.provider,
                    operation=f"Status check for task {task_id}",
                )
            except AdapterError as exc:
                if not exc.is_transient:
                    raise
                # Transient hiccup, absorbed while the budget lasts
                last_error = exc
                logger.warning(
                    "Status check %d/%d for %s task %s failed (%s), retrying",
                    attempt,
                    self.max_attempts,
                    self.provider.value,
                    task_id,
                    exc.kind.value,
                    extra={"provider": self.provider.value, "task_id": task_id},
                )
            else:
                last_error = None
                if status.state == TaskState.SUCCESS:
                    logger.debug("Task %s succeeded after %d status checks", task_id, attempt)
                    return status
                if status.state == TaskState.FAIL:
                    raise AdapterError(
                        ErrorKind.TASK_FAILED,
                        self.provider,
                        f"Task {task_id} failed: {status.fail_message or 'unknown'}",
                    )

            if attempt < self.max_attempts:
                await self._sleep(min(self.interval_seconds, deadline.remaining()))

        detail = f" (last error: {last_error.kind.value})" if last_error else ""
        raise AdapterError(
            ErrorKind.TASK_TIMEOUT,
            self.provider,
            f"Task {task_id} timed out after {self.max_attempts} attempts{detail}",
        )
