"""Tests for the rate-limited scheduler and its retry policy."""

import asyncio
import time
import pytest

from dialai.core.scheduler import RateLimitedScheduler, retry_on_rate_limit
from dialai.errors import ProviderError, RateLimitedError


class TestRateLimitedScheduler:
    """Test cases for RateLimitedScheduler."""

    def test_operations_complete_in_submission_order(self):
        """Completion order equals submission order."""
        starts = []
        completed = []

        def make_operation(index):
            async def operation():
                starts.append((index, time.monotonic()))
                await asyncio.sleep(0.01 * (5 - index))
                completed.append(index)
                return index
            return operation

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.05)
            results = await asyncio.gather(
                *(scheduler.submit(make_operation(i)) for i in range(5))
            )
            scheduler.close()
            return results

        results = asyncio.run(run())

        assert results == [0, 1, 2, 3, 4]
        assert completed == [0, 1, 2, 3, 4]
        assert [index for index, _ in starts] == [0, 1, 2, 3, 4]

    def test_gap_between_invocations_respects_min_interval(self):
        """Consecutive invocation starts are at least min_interval apart."""
        starts = []

        async def operation():
            starts.append(time.monotonic())

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.05)
            await asyncio.gather(*(scheduler.submit(operation) for _ in range(4)))
            scheduler.close()

        asyncio.run(run())

        assert len(starts) == 4
        for earlier, later in zip(starts, starts[1:]):
            assert later - earlier >= 0.05 - 0.005

    def test_failed_operation_does_not_block_queue(self):
        """A failing operation is reported to its caller and the queue moves on."""

        async def failing():
            raise ProviderError("boom")

        async def succeeding():
            return "ok"

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            results = await asyncio.gather(
                scheduler.submit(failing),
                scheduler.submit(succeeding),
                return_exceptions=True,
            )
            status = scheduler.get_status()
            scheduler.close()
            return results, status

        results, status = asyncio.run(run())

        assert isinstance(results[0], ProviderError)
        assert results[1] == "ok"
        assert status["invocations"] == 2
        assert status["queued"] == 0

    def test_last_invocation_time_updated_after_failure(self):
        """The spacing clock advances even when an operation fails."""

        async def failing():
            raise ProviderError("boom")

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            with pytest.raises(ProviderError):
                await scheduler.submit(failing)
            return scheduler.last_invocation_time

        assert asyncio.run(run()) is not None

    def test_close_cancels_queued_operations(self):
        """Closing the scheduler cancels anything still waiting."""

        async def slow():
            await asyncio.sleep(0.01)
            return "done"

        async def run():
            scheduler = RateLimitedScheduler(min_interval=10.0)
            first = await scheduler.submit(slow)
            pending = asyncio.ensure_future(scheduler.submit(slow))
            await asyncio.sleep(0.01)
            scheduler.close()
            with pytest.raises(asyncio.CancelledError):
                await pending
            return first

        assert asyncio.run(run()) == "done"


class TestRetryOnRateLimit:
    """Test cases for the call-site retry policy."""

    def test_retries_rate_limited_then_succeeds(self):
        """Two rate-limited attempts then success; delays are base*1 + base*2."""
        attempts = []

        async def operation():
            attempts.append(time.monotonic())
            if len(attempts) < 3:
                raise RateLimitedError()
            return "reply"

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            started = time.monotonic()
            result = await retry_on_rate_limit(
                scheduler, operation, max_attempts=3, base_delay=0.05
            )
            scheduler.close()
            return result, time.monotonic() - started

        result, elapsed = asyncio.run(run())

        assert result == "reply"
        assert len(attempts) == 3
        assert elapsed >= 0.05 * 1 + 0.05 * 2

    def test_gives_up_after_max_attempts(self):
        """The last rate-limit error is raised once attempts run out."""
        attempts = []

        async def operation():
            attempts.append(1)
            raise RateLimitedError("slow down")

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            try:
                await retry_on_rate_limit(scheduler, operation, max_attempts=3, base_delay=0.01)
            finally:
                scheduler.close()

        with pytest.raises(RateLimitedError, match="slow down"):
            asyncio.run(run())
        assert len(attempts) == 3

    def test_other_errors_are_not_retried(self):
        """Errors without the rate-limit status propagate immediately."""
        attempts = []

        async def operation():
            attempts.append(1)
            raise ProviderError("bad request")

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            try:
                await retry_on_rate_limit(scheduler, operation, max_attempts=3, base_delay=0.01)
            finally:
                scheduler.close()

        with pytest.raises(ProviderError):
            asyncio.run(run())
        assert len(attempts) == 1

    def test_status_code_attribute_marks_rate_limit(self):
        """Any error carrying status_code 429 is treated as rate limited."""

        class HttpError(Exception):
            status_code = 429

        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) == 1:
                raise HttpError()
            return "ok"

        async def run():
            scheduler = RateLimitedScheduler(min_interval=0.0)
            result = await retry_on_rate_limit(scheduler, operation, base_delay=0.01)
            scheduler.close()
            return result

        assert asyncio.run(run()) == "ok"
        assert len(attempts) == 2
