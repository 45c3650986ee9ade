"""Scheduled job definitions for infobot.

Provides:
- CheckCycleJob: check every configured source and announce unseen items
- CleanupJob: purge old sent-notification rows and log ledger stats

Usage:
    from infobot.scheduling.jobs import CheckCycleJob

    job = CheckCycleJob(pollers, dispatcher, settings)
    summary = await job()
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import structlog

from infobot.models.config import SchedulerSettings
from infobot.models.content import CheckResult, SourceKind
from infobot.models.scheduler import CycleSummary, SourceCheckOutcome
from infobot.notification.dispatcher import NotificationDispatcher
from infobot.observability.context import clear_correlation_id, set_correlation_id
from infobot.observability.metrics import (
    CHECK_CYCLE_DURATION,
    ERROR_SUMMARIES,
    ITEMS_DISCOVERED,
    LAST_CHECK_TIMESTAMP,
    NOTIFICATIONS_PURGED,
    SOURCE_CHECKS,
)
from infobot.sources.base import SourcePoller
from infobot.storage.dedup_store import DedupStore
from infobot.utils.exceptions import PersistenceError

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseJob(ABC):
    """Base class for scheduled jobs.

    Provides common functionality:
    - Correlation ID management
    - Error handling and logging
    - Execution timing
    """

    def __init__(self, name: str):
        """Initialize job.

        Args:
            name: Job name for logging
        """
        self.name = name
        self.last_run: Optional[datetime] = None
        self.last_success: Optional[datetime] = None
        self.run_count: int = 0
        self.error_count: int = 0

    async def __call__(self) -> Any:
        """Execute the job with correlation ID and error handling."""
        start = time.monotonic()
        corr_id = set_correlation_id(
            f"{self.name}-{_utc_now().strftime('%Y%m%d-%H%M%S')}"
        )

        logger.info("job_starting", job_name=self.name, correlation_id=corr_id)

        try:
            result = await self.run()

            self.last_run = _utc_now()
            self.last_success = self.last_run
            self.run_count += 1

            logger.info(
                "job_completed",
                job_name=self.name,
                duration_seconds=round(time.monotonic() - start, 2),
                correlation_id=corr_id,
            )
            return result

        except Exception as e:
            self.last_run = _utc_now()
            self.error_count += 1

            logger.error(
                "job_failed",
                job_name=self.name,
                error=str(e),
                correlation_id=corr_id,
                exc_info=True,
            )
            raise

        finally:
            clear_correlation_id()

    @abstractmethod
    async def run(self) -> Any:
        """Execute the job logic."""
        pass  # pragma: no cover (abstract method)

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_success": (
                self.last_success.isoformat() if self.last_success else None
            ),
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class CheckCycleJob(BaseJob):
    """One check cycle across all configured sources.

    Sources are processed concurrently and independently: a failure in one
    source is recorded in its outcome and never reaches the others. Within a
    source, items are sent sequentially and the cursor is advanced last.
    """

    def __init__(
        self,
        pollers: Mapping[SourceKind, SourcePoller],
        dispatcher: NotificationDispatcher,
        settings: Optional[SchedulerSettings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize check cycle job.

        Args:
            pollers: Enabled pollers keyed by source kind
            dispatcher: Sends unseen items and the error summary
            settings: Error summary throttle interval
            clock: Monotonic clock used for the throttle
        """
        super().__init__("check_cycle")
        self.pollers = pollers
        self.dispatcher = dispatcher
        self.settings = settings or SchedulerSettings()
        self._clock = clock or time.monotonic
        self._last_error_summary_at: Optional[float] = None

    def configured_pollers(self) -> List[SourcePoller]:
        """Pollers that have the identifiers they need; others are skipped."""
        ready = []
        for poller in self.pollers.values():
            if poller.is_configured():
                ready.append(poller)
            else:
                logger.debug("source_skipped", source=poller.source_id, reason="not_configured")
        return ready

    async def run(self) -> CycleSummary:
        started_at = _utc_now()
        start = time.monotonic()
        pollers = self.configured_pollers()

        logger.info(
            "check_cycle_started", sources=[p.source_id for p in pollers]
        )

        outcomes = list(
            await asyncio.gather(*(self._process_source(p) for p in pollers))
        )
        summary = CycleSummary(started_at=started_at, outcomes=outcomes)

        if summary.failed:
            summary.error_summary_sent = await self._maybe_send_error_summary(
                summary.failed
            )

        summary.duration_seconds = time.monotonic() - start
        CHECK_CYCLE_DURATION.observe(summary.duration_seconds)

        logger.info(
            "check_cycle_completed",
            sources_checked=summary.sources_checked,
            sources_succeeded=summary.sources_succeeded,
            sources_failed=len(summary.failed),
            new_items=summary.total_new,
            sent=summary.total_sent,
            duration_seconds=round(summary.duration_seconds, 2),
        )
        return summary

    async def _process_source(self, poller: SourcePoller) -> SourceCheckOutcome:
        """Check, send and advance the cursor for one source.

        The cursor is advanced whatever the outcome, except when the task is
        cancelled mid-batch: unsent items must stay newer than the cursor.
        """
        kind = poller.kind
        try:
            outcome, result = await self._check_and_send(poller)
        except asyncio.CancelledError:
            logger.warning("source_check_cancelled", source=kind.value)
            raise

        try:
            await poller.advance_cursor(result)
            LAST_CHECK_TIMESTAMP.labels(source=kind.value).set(time.time())
        except PersistenceError as e:
            logger.error("cursor_advance_failed", source=kind.value, error=str(e))
        return outcome

    async def _check_and_send(
        self, poller: SourcePoller
    ) -> Tuple[SourceCheckOutcome, Optional[CheckResult]]:
        """Returns the outcome and the result the cursor may advance to."""
        kind = poller.kind

        try:
            result = await poller.check_for_new()
        except PersistenceError as e:
            SOURCE_CHECKS.labels(source=kind.value, status="failed").inc()
            return SourceCheckOutcome(source=kind, success=False, error=str(e)), None
        except Exception as e:
            SOURCE_CHECKS.labels(source=kind.value, status="failed").inc()
            logger.exception("source_check_crashed", source=kind.value, error=str(e))
            return SourceCheckOutcome(source=kind, success=False, error=str(e)), None

        if not result.success:
            SOURCE_CHECKS.labels(source=kind.value, status="failed").inc()
            return (
                SourceCheckOutcome(source=kind, success=False, error=result.error),
                result,
            )

        ITEMS_DISCOVERED.labels(source=kind.value).inc(result.new_count)

        try:
            dispatched = await self.dispatcher.send_batch(
                result.new_content, poller.source_id
            )
        except Exception as e:
            SOURCE_CHECKS.labels(source=kind.value, status="failed").inc()
            logger.exception("source_send_crashed", source=kind.value, error=str(e))
            # Items already sent are in the ledger; the rest are retried next cycle
            outcome = SourceCheckOutcome(
                source=kind,
                success=False,
                new_items=result.new_count,
                total_checked=result.total_checked,
                error=str(e),
            )
            return outcome, None

        SOURCE_CHECKS.labels(source=kind.value, status="success").inc()
        sent = sum(1 for d in dispatched if d.success)
        outcome = SourceCheckOutcome(
            source=kind,
            success=True,
            new_items=result.new_count,
            sent=sent,
            send_failures=len(dispatched) - sent,
            total_checked=result.total_checked,
        )
        return outcome, result

    def _error_summary_due(self) -> bool:
        if self._last_error_summary_at is None:
            return True
        elapsed = self._clock() - self._last_error_summary_at
        return elapsed >= self.settings.error_summary_interval_seconds

    async def _maybe_send_error_summary(
        self, failed: List[SourceCheckOutcome]
    ) -> bool:
        """Send one aggregated error message unless one went out recently."""
        if not self._error_summary_due():
            logger.debug("error_summary_throttled", failed_sources=len(failed))
            return False

        lines = [
            f"**{o.source.display_name}**: {o.error or 'unknown error'}" for o in failed
        ]
        message = (
            "⚠️ **Content Check Issues**\n\n"
            + "\n".join(lines)
            + "\n\n*Check logs for more details*"
        )

        result = await self.dispatcher.send_raw(message)
        if not result.success:
            return False

        self._last_error_summary_at = self._clock()
        ERROR_SUMMARIES.inc()
        logger.info("error_summary_sent", failed_sources=len(failed))
        return True


class CleanupJob(BaseJob):
    """Daily retention sweep of the sent-notification ledger."""

    def __init__(self, store: DedupStore, retention_days: int = 30):
        super().__init__("daily_cleanup")
        self.store = store
        self.retention_days = retention_days

    async def run(self) -> Dict[str, Any]:
        removed = await self.store.sweep_expired(self.retention_days)
        NOTIFICATIONS_PURGED.inc(removed)
        logger.info(
            "cleanup_completed", removed=removed, retention_days=self.retention_days
        )

        stats = await self.store.get_stats()
        logger.info("ledger_stats", **stats.model_dump(mode="json"))

        return {"removed": removed, "stats": stats.model_dump(mode="json")}
