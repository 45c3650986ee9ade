"""Tests for BackoffController."""

import pytest
from unittest.mock import AsyncMock

from infobot.utils.backoff import BackoffController
from infobot.utils.exceptions import (
    FetchError,
    RateLimitError,
    RetryExhaustedError,
)


class FakeTime:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 1000.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


def make_controller(fake_time, **kwargs):
    params = {"base_delay": 0.0, "rate_limit_wait": 30.0, "max_attempts": 3}
    params.update(kwargs)
    return BackoffController(
        name="instagram", clock=fake_time.clock, sleep=fake_time.sleep, **params
    )


class TestDelayComputation:
    """Spacing and rate-limit wait formulas."""

    def test_delay_doubles_per_failure(self):
        controller = BackoffController(base_delay=2.0)
        assert controller.current_delay() == 2.0
        controller.record_failure()
        assert controller.current_delay() == 4.0
        controller.record_failure()
        assert controller.current_delay() == 8.0

    def test_delay_is_capped(self):
        controller = BackoffController(base_delay=10.0, max_delay=25.0)
        for _ in range(5):
            controller.record_failure()
        assert controller.current_delay() == 25.0

    def test_success_resets_failures(self):
        controller = BackoffController(base_delay=1.0)
        controller.record_failure()
        controller.record_failure()
        controller.record_success()
        assert controller.failure_count == 0
        assert controller.current_delay() == 1.0

    def test_rate_limit_delay_sequence(self):
        controller = BackoffController(base_delay=1.0, rate_limit_wait=30.0)
        assert controller.rate_limit_delay(1) == 30.0
        assert controller.rate_limit_delay(2) == 60.0
        assert controller.rate_limit_delay(3) == 120.0

    def test_retry_after_wins(self):
        controller = BackoffController(base_delay=1.0)
        assert controller.rate_limit_delay(1, retry_after=7.5) == 7.5
        assert controller.rate_limit_delay(2, retry_after=0) == 60.0

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            BackoffController(base_delay=1.0, max_attempts=0)


class TestWaitForSlot:
    """Request spacing."""

    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self, fake_time):
        controller = make_controller(fake_time, base_delay=5.0)
        await controller.wait_for_slot()
        assert fake_time.sleeps == []

    @pytest.mark.asyncio
    async def test_second_request_waits_remaining(self, fake_time):
        controller = make_controller(fake_time, base_delay=5.0)
        await controller.wait_for_slot()
        fake_time.now += 2.0
        await controller.wait_for_slot()
        assert fake_time.sleeps == [3.0]

    @pytest.mark.asyncio
    async def test_no_wait_when_spacing_elapsed(self, fake_time):
        controller = make_controller(fake_time, base_delay=5.0)
        await controller.wait_for_slot()
        fake_time.now += 10.0
        await controller.wait_for_slot()
        assert fake_time.sleeps == []


class TestExecute:
    """Rate-limit retry loop."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, fake_time):
        controller = make_controller(fake_time)
        func = AsyncMock(return_value="ok")

        assert await controller.execute(func) == "ok"
        assert func.call_count == 1
        assert fake_time.sleeps == []

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self, fake_time):
        controller = make_controller(fake_time)
        func = AsyncMock(side_effect=[RateLimitError("slow down"), "ok"])

        assert await controller.execute(func) == "ok"
        assert func.call_count == 2
        assert fake_time.sleeps == [30.0]
        assert controller.failure_count == 0

    @pytest.mark.asyncio
    async def test_exhaustion_waits_30_then_60(self, fake_time):
        controller = make_controller(fake_time)
        func = AsyncMock(side_effect=RateLimitError("slow down"))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await controller.execute(func)

        assert func.call_count == 3
        assert fake_time.sleeps == [30.0, 60.0]
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, RateLimitError)

    @pytest.mark.asyncio
    async def test_uses_retry_after_hint(self, fake_time):
        controller = make_controller(fake_time)
        func = AsyncMock(side_effect=[RateLimitError("slow", retry_after=5), "ok"])

        await controller.execute(func)
        assert fake_time.sleeps == [5]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, fake_time):
        controller = make_controller(fake_time)
        func = AsyncMock(side_effect=FetchError("HTTP 404"))

        with pytest.raises(FetchError):
            await controller.execute(func)

        assert func.call_count == 1
        assert controller.failure_count == 1

    @pytest.mark.asyncio
    async def test_failures_widen_spacing_for_next_call(self, fake_time):
        controller = make_controller(fake_time, base_delay=10.0, max_attempts=1)
        func = AsyncMock(side_effect=RateLimitError("slow"))

        with pytest.raises(RetryExhaustedError):
            await controller.execute(func)
        assert controller.current_delay() == 20.0

        func = AsyncMock(return_value="ok")
        await controller.execute(func)
        assert fake_time.sleeps == [20.0]
        assert controller.current_delay() == 10.0
