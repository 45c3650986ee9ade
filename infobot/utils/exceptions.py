"""Exception hierarchy for the check-and-notify pipeline.

All exceptions inherit from InfobotError so callers at the process boundary
can catch every pipeline error in a single except block:

```python
try:
    await scheduler.trigger_manual_check()
except InfobotError as e:
    logger.error("check_failed", error=str(e))
```

Errors are grouped by the stage that raises them:
- Configuration: a source or the config file is unusable
- Fetch: a Source Poller could not retrieve content
- Persistence: the Dedup Store could not read or write
- Dispatch: the Notification Channel rejected a message
- Scheduler: lifecycle misuse (double start, bad interval)
"""

from typing import Optional


class InfobotError(Exception):
    """Base exception for all infobot errors."""

    pass


class ConfigurationError(InfobotError):
    """Required configuration is missing or invalid.

    Raised when:
    - A source lacks the identifiers it needs (the source is skipped)
    - The configuration file cannot be parsed or validated
    """

    pass


class ConfigValidationError(ConfigurationError):
    """Configuration file failed to load or validate."""

    pass


class FetchError(InfobotError):
    """Fetching content from a source failed.

    Raised when:
    - The source returns a non-retryable HTTP status (401, 404, ...)
    - The response body cannot be parsed
    - Authentication against the source fails

    Non-transient: the Backoff Controller surfaces it immediately.
    """

    pass


class TransientFetchError(FetchError):
    """Fetch failed for a reason that may clear up on its own.

    Raised when:
    - The request times out
    - The connection drops
    - The source answers with a 5xx status
    """

    pass


class RateLimitError(TransientFetchError):
    """Source signalled that we are being rate limited.

    Raised when:
    - The source answers with 429 (or a source-specific throttle status)
    - A quota error is reported in the response body
    """

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RetryExhaustedError(TransientFetchError):
    """Rate-limit retries were exhausted without a successful fetch."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class PersistenceError(InfobotError):
    """A Dedup Store read or write failed.

    Raised when:
    - The SQLite database cannot be opened or its schema created
    - A query or upsert fails
    """

    pass


class DispatchError(InfobotError):
    """Sending a message to the Notification Channel failed.

    Raised when:
    - The webhook answers with a non-2xx status
    - The HTTP request times out or the connection fails
    - The channel answers without a message identifier
    """

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class SchedulerError(InfobotError):
    """Base for scheduler lifecycle errors."""

    pass


class AlreadyRunningError(SchedulerError):
    """start() was called on a scheduler that is already running."""

    pass


class InvalidIntervalError(SchedulerError):
    """Check interval is outside the allowed range."""

    def __init__(self, minutes: int, minimum: int, maximum: int) -> None:
        super().__init__(
            f"Check interval must be between {minimum} and {maximum} minutes, "
            f"got {minutes}"
        )
        self.minutes = minutes


class TransientDispatchError(DispatchError):
    """Channel send failed for a reason worth retrying (timeout, 5xx)."""

    pass
