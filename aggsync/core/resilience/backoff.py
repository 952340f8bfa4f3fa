"""
Bounded Poll-With-Backoff Combinator

Waiting on a contended population lock is a sleep-then-recheck loop rather
than a blocking wait, so it works the same for every worker regardless of
where the lock holder runs. Left unbounded, such a loop spins forever when the
holder is slow or the cache misbehaves; here every wait carries an explicit
budget and ends with a typed timeout.

Mechanism:
    1. Call ``step()``.
    2. Non-None result -> the wait is over, return it.
    3. None -> sleep ``interval`` and try again.
    4. The next attempt would start after ``max_wait`` -> raise LockWaitTimeoutError.
    Exceptions raised by ``step`` are never retried; they propagate immediately.

Built on tenacity, so sleeps are plain ``asyncio.sleep`` calls and honour
task cancellation.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_before_delay,
    wait_fixed,
)

from aggsync.core.config.constants import Stage
from aggsync.core.exceptions import LockWaitTimeoutError
from aggsync.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

T = TypeVar("T")


def _is_pending(result) -> bool:
    return result is None


async def poll_until(
    step: Callable[[], Awaitable[T | None]],
    *,
    interval: float,
    max_wait: float,
    operation: str,
    key: str,
) -> T:
    """
    Repeat ``step`` with a fixed backoff until it yields a value or the budget runs out.

    Args:
        step: Coroutine function returning a value when done, None to keep waiting
        interval: Seconds to sleep between attempts
        max_wait: Total wait budget in seconds
        operation: Name of the waiting operation (for logs and error details)
        key: Key being waited on (for logs and error details)

    Returns:
        The first non-None value returned by ``step``

    Raises:
        LockWaitTimeoutError: If the budget is exhausted
    """
    std_logger = logging.getLogger(__name__)  # tenacity logs through the stdlib

    retrying = AsyncRetrying(
        stop=stop_before_delay(max_wait),
        wait=wait_fixed(interval),
        retry=retry_if_result(_is_pending),
        before_sleep=before_sleep_log(std_logger, logging.DEBUG),
    )

    try:
        return await retrying(step)
    except RetryError as exc:
        attempts = exc.last_attempt.attempt_number
        log_stage(
            logger,
            Stage.LOCK_WAIT,
            "Gave up waiting",
            level="warning",
            operation=operation,
            key=key,
            attempts=attempts,
            max_wait=max_wait,
        )
        raise LockWaitTimeoutError(
            message=f"Cache temporarily unavailable: {operation} timed out waiting on {key}",
            details={
                "operation": operation,
                "key": key,
                "attempts": attempts,
                "max_wait": max_wait,
            },
        ).with_suggestion(
            "Serve from the authoritative store or retry later"
        ) from exc
