"""
Serialized, rate-limited access to the generation provider.

All provider calls go through one ``RateLimitedScheduler``: operations run
one at a time in submission order, each starting at least ``min_interval``
seconds after the previous one finished. Retrying on rate-limit responses is
done by the caller with ``retry_on_rate_limit``.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional, Tuple, TypeVar
import structlog

from ..errors import RATE_LIMIT_STATUS


logger = structlog.get_logger()

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


class RateLimitedScheduler:
    """FIFO queue of async operations with a minimum spacing between them."""

    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self.last_invocation_time: Optional[float] = None
        self.invocations = 0
        self._queue: Deque[Tuple[Operation, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None

    async def submit(self, operation: Operation) -> T:
        """Queue ``operation`` and wait for its result."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((operation, future))

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._process())

        return await future

    def _time_until_ready(self) -> float:
        if self.last_invocation_time is None:
            return 0.0
        return max(0.0, self.last_invocation_time + self.min_interval - time.monotonic())

    async def _process(self) -> None:
        while self._queue:
            wait = self._time_until_ready()
            if wait > 0:
                await asyncio.sleep(wait)

            operation, future = self._queue.popleft()
            if future.done():
                # Submitter gave up before its turn came
                continue

            self.invocations += 1
            try:
                result = await operation()
            except Exception as e:
                logger.warning(
                    "Scheduled operation failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self.last_invocation_time = time.monotonic()

    def close(self) -> None:
        """Stop the worker and fail anything still queued."""
        if self._worker and not self._worker.done():
            self._worker.cancel()
        self._worker = None

        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()

    def get_status(self) -> dict:
        return {
            "queued": len(self._queue),
            "running": self._worker is not None and not self._worker.done(),
            "invocations": self.invocations,
            "min_interval": self.min_interval,
        }


def _is_rate_limited(error: Exception) -> bool:
    return getattr(error, "status_code", None) == RATE_LIMIT_STATUS


async def retry_on_rate_limit(
    scheduler: RateLimitedScheduler,
    operation: Operation,
    max_attempts: int = 3,
    base_delay: float = 1.0,
) -> T:
    """
    Submit ``operation`` through ``scheduler``, retrying rate-limited attempts.

    Attempt ``n`` that is rate limited is followed by a pause of
    ``n * base_delay`` seconds. Any other error propagates immediately.
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await scheduler.submit(operation)
        except Exception as e:
            if not _is_rate_limited(e):
                raise
            last_error = e
            if attempt == max_attempts:
                break

            delay = base_delay * attempt
            logger.warning(
                "Rate limited, retrying",
                attempt=attempt,
                max_attempts=max_attempts,
                delay=delay,
            )
            await asyncio.sleep(delay)

    logger.error("Rate limit retries exhausted", attempts=max_attempts)
    raise last_error
