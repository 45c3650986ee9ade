"""Per-poller rate limiting with exponential backoff.

Each Source Poller owns one BackoffController. It spaces consecutive requests
by a delay that doubles with every consecutive failure and retries
rate-limited calls a bounded number of times.

Features:
- Request spacing: delay = base_delay * 2^failure_count (capped)
- Bounded rate-limit retries: waits of rate_limit_wait * 2^(attempt-1)
- Respects retry_after from RateLimitError when the source provides it
- Injectable clock and sleep for tests
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from infobot.observability.metrics import RATE_LIMIT_RETRIES
from infobot.utils.exceptions import RateLimitError, RetryExhaustedError

logger = structlog.get_logger(__name__)


T = TypeVar("T")


class BackoffController:
    """Async request spacing and rate-limit retry for a single source.

    State is private to one poller; nothing is shared across sources.
    """

    def __init__(
        self,
        base_delay: float,
        rate_limit_wait: float = 30.0,
        max_attempts: int = 3,
        max_delay: float = 3600.0,
        name: str = "source",
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            base_delay: Minimum spacing between requests in seconds
            rate_limit_wait: First wait after a rate-limit signal
            max_attempts: Total attempts per execute() call
            max_delay: Cap on the computed request spacing
            name: Source name used in log events
            clock: Monotonic clock, defaults to time.monotonic
            sleep: Async sleep, defaults to asyncio.sleep
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.base_delay = base_delay
        self.rate_limit_wait = rate_limit_wait
        self.max_attempts = max_attempts
        self.max_delay = max_delay
        self.name = name
        self.failure_count = 0
        self.last_request_at: Optional[float] = None

        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

    def current_delay(self) -> float:
        """Spacing currently required between two requests."""
        return min(self.base_delay * (2**self.failure_count), self.max_delay)

    def rate_limit_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Wait before retry number ``attempt`` (1-indexed).

        retry_after from the source wins over the computed value.
        """
        if retry_after is not None and retry_after > 0:
            return retry_after
        return self.rate_limit_wait * (2 ** (attempt - 1))

    def record_success(self) -> None:
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1

    async def wait_for_slot(self) -> None:
        """Sleep until the current spacing has elapsed, then stamp the request."""
        if self.last_request_at is not None:
            elapsed = self._clock() - self.last_request_at
            remaining = self.current_delay() - elapsed
            if remaining > 0:
                logger.debug(
                    "backoff_waiting",
                    source=self.name,
                    wait_seconds=round(remaining, 2),
                    failure_count=self.failure_count,
                )
                await self._sleep(remaining)

        self.last_request_at = self._clock()

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` respecting spacing, retrying on RateLimitError.

        Args:
            func: Async callable performing one request

        Returns:
            Result of the first successful call

        Raises:
            RetryExhaustedError: Every attempt was rate limited
            Exception: Any other error from func, re-raised immediately
        """
        last_error: Optional[RateLimitError] = None

        for attempt in range(1, self.max_attempts + 1):
            await self.wait_for_slot()
            try:
                result = await func()
            except RateLimitError as e:
                self.record_failure()
                last_error = e

                if attempt >= self.max_attempts:
                    break

                delay = self.rate_limit_delay(attempt, e.retry_after)
                RATE_LIMIT_RETRIES.labels(source=self.name).inc()
                logger.warning(
                    "rate_limit_retry",
                    source=self.name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_seconds=delay,
                    retry_after=e.retry_after,
                )
                await self._sleep(delay)
                continue
            except Exception:
                self.record_failure()
                raise

            self.record_success()
            return result

        logger.error(
            "rate_limit_retries_exhausted",
            source=self.name,
            attempts=self.max_attempts,
            error=str(last_error),
        )
        raise RetryExhaustedError(
            f"{self.name}: rate limited after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        ) from last_error
