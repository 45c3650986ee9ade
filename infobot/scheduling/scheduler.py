"""APScheduler wrapper driving check and cleanup cycles.

Provides:
- Interval check job, daily cleanup job and a one-off initial check
- Single-active-cycle guarantee for scheduled and manual checks
- Status snapshot with an interval-aligned next-check estimate
- Runtime interval changes persisted in the Dedup Store

Usage:
    scheduler = NotifierScheduler(check_job, cleanup_job, store, settings)

    await scheduler.start()
    result = await scheduler.trigger_manual_check()
    await scheduler.stop()
"""

import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Set

import structlog
from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from infobot.models.config import (
    MAX_CHECK_INTERVAL_MINUTES,
    MIN_CHECK_INTERVAL_MINUTES,
    SchedulerSettings,
)
from infobot.models.scheduler import (
    CycleSummary,
    ManualCheckResult,
    SchedulerState,
    SchedulerStatus,
)
from infobot.observability.metrics import SCHEDULER_JOBS
from infobot.scheduling.jobs import CheckCycleJob, CleanupJob
from infobot.storage.dedup_store import DedupStore
from infobot.utils.exceptions import AlreadyRunningError, InvalidIntervalError

logger = structlog.get_logger()

CHECK_JOB_ID = "main-check"
CLEANUP_JOB_ID = "daily-cleanup"
INITIAL_CHECK_JOB_ID = "initial-check"
INTERVAL_SETTING_KEY = "check_interval_minutes"


class NotifierScheduler:
    """Async scheduler for infobot check cycles.

    Wraps APScheduler's AsyncIOScheduler with:
    - Lifecycle state machine (stopped, starting, running, stopping)
    - One check cycle at a time, whoever asks for it
    - Error handling so a failing cycle never stops the ticking
    """

    def __init__(
        self,
        check_job: CheckCycleJob,
        cleanup_job: CleanupJob,
        store: DedupStore,
        settings: SchedulerSettings,
        misfire_grace_time: int = 300,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize scheduler.

        Args:
            check_job: Job run on every tick and on manual triggers
            cleanup_job: Job run once per day
            store: Where a changed interval is persisted
            settings: Interval, cleanup time, timezone, initial delay
            misfire_grace_time: Grace time for missed jobs (seconds)
            now_fn: Clock returning timezone-aware UTC datetimes
        """
        self.check_job = check_job
        self.cleanup_job = cleanup_job
        self.store = store
        self.settings = settings
        self.misfire_grace_time = misfire_grace_time
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

        self.state = SchedulerState.STOPPED
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._cycle_lock = asyncio.Lock()
        self._cycle_tasks: Set["asyncio.Task[None]"] = set()
        self.last_summary: Optional[CycleSummary] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _build_scheduler(self) -> AsyncIOScheduler:
        scheduler = AsyncIOScheduler(
            timezone=self.settings.timezone,
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": self.misfire_grace_time,
            },
        )
        scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)
        return scheduler

    async def start(self) -> None:
        """Begin periodic ticking.

        Raises:
            AlreadyRunningError: The scheduler is not stopped
        """
        if self.state != SchedulerState.STOPPED:
            raise AlreadyRunningError(f"Scheduler is {self.state.value}")

        self.state = SchedulerState.STARTING
        try:
            scheduler = self._build_scheduler()
            interval = self.settings.check_interval_minutes

            scheduler.add_job(
                self._run_scheduled_check,
                trigger=IntervalTrigger(minutes=interval),
                id=CHECK_JOB_ID,
                name=CHECK_JOB_ID,
                replace_existing=True,
            )
            scheduler.add_job(
                self._run_cleanup,
                trigger=CronTrigger(
                    hour=self.settings.cleanup_hour,
                    minute=self.settings.cleanup_minute,
                    timezone=self.settings.timezone,
                ),
                id=CLEANUP_JOB_ID,
                name=CLEANUP_JOB_ID,
                replace_existing=True,
            )
            scheduler.add_job(
                self._run_scheduled_check,
                trigger=DateTrigger(
                    run_date=self._now()
                    + timedelta(seconds=self.settings.initial_delay_seconds)
                ),
                id=INITIAL_CHECK_JOB_ID,
                name=INITIAL_CHECK_JOB_ID,
                replace_existing=True,
            )

            scheduler.start()
        except Exception:
            self.state = SchedulerState.STOPPED
            raise

        self.scheduler = scheduler
        self.state = SchedulerState.RUNNING
        self._update_metrics()

        logger.info(
            "scheduler_started",
            check_interval_minutes=interval,
            cleanup_time=(
                f"{self.settings.cleanup_hour:02d}:{self.settings.cleanup_minute:02d}"
            ),
            timezone=self.settings.timezone,
            jobs=[job.id for job in scheduler.get_jobs()],
        )

    async def stop(self) -> None:
        """Remove future ticks; an in-flight cycle is left to finish.

        Scheduled cycles run as their own tasks, so shutting APScheduler down
        never cancels one. wait_for_cycle() blocks until it is done.
        """
        if self.state == SchedulerState.STOPPED or self.scheduler is None:
            self.state = SchedulerState.STOPPED
            return

        self.state = SchedulerState.STOPPING
        logger.info("scheduler_shutting_down")

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        self.state = SchedulerState.STOPPED
        SCHEDULER_JOBS.set(0)

        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    async def run_cycle(self, trigger: str = "scheduled") -> Optional[CycleSummary]:
        """Run one check cycle unless another one is active.

        Returns:
            The cycle summary, or None when the request was rejected
        """
        if self._cycle_lock.locked():
            logger.warning("check_cycle_skipped", trigger=trigger, reason="in_progress")
            return None

        async with self._cycle_lock:
            logger.info("check_cycle_triggered", trigger=trigger)
            summary = await self.check_job()
            self.last_summary = summary
            return summary

    async def wait_for_cycle(self) -> None:
        """Block until no check cycle is running."""
        if self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks), return_exceptions=True)
        async with self._cycle_lock:
            pass

    async def _run_scheduled_check(self) -> None:
        # APScheduler cancels running job coroutines on shutdown, so the
        # cycle itself runs in a task the executor does not own.
        if self._cycle_lock.locked():
            logger.warning(
                "check_cycle_skipped", trigger="scheduled", reason="in_progress"
            )
            return
        task = asyncio.get_running_loop().create_task(self._scheduled_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _scheduled_cycle(self) -> None:
        try:
            await self.run_cycle("scheduled")
        except Exception as e:
            # BaseJob already logged the traceback
            logger.error("scheduled_check_failed", error=str(e))

    async def _run_cleanup(self) -> None:
        try:
            await self.cleanup_job()
        except Exception as e:
            logger.error("scheduled_cleanup_failed", error=str(e))

    async def trigger_manual_check(self) -> ManualCheckResult:
        """Run a check cycle now, outside the regular ticks."""
        if self._cycle_lock.locked():
            logger.info("manual_check_rejected", reason="in_progress")
            return ManualCheckResult(
                success=False, message="check already in progress"
            )

        try:
            summary = await self.run_cycle("manual")
        except Exception as e:
            return ManualCheckResult(success=False, message=f"check failed: {e}")

        if summary is None:
            return ManualCheckResult(
                success=False, message="check already in progress"
            )

        return ManualCheckResult(
            success=True,
            message=(
                f"checked {summary.sources_checked} sources, "
                f"{summary.total_new} new, {summary.total_sent} sent"
            ),
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def next_check_estimate(self) -> datetime:
        """Next interval-aligned instant at or after now.

        Aligned to the epoch, not to the actual last run.
        """
        interval_seconds = self.settings.check_interval_minutes * 60
        now_ts = self._now().timestamp()
        aligned = math.ceil(now_ts / interval_seconds) * interval_seconds
        return datetime.fromtimestamp(aligned, tz=timezone.utc)

    def status(self) -> SchedulerStatus:
        running = self.is_running
        active = (
            [job.id for job in self.scheduler.get_jobs()]
            if running and self.scheduler is not None
            else []
        )
        return SchedulerStatus(
            is_running=running,
            state=self.state,
            active_tasks=active,
            check_interval_minutes=self.settings.check_interval_minutes,
            next_check=self.next_check_estimate() if running else None,
            cycle_in_progress=self.cycle_in_progress,
        )

    async def update_check_interval(self, minutes: int) -> None:
        """Change the check interval, persist it and restart ticking.

        Raises:
            InvalidIntervalError: minutes outside the allowed range
            PersistenceError: The new interval could not be stored
        """
        if (
            isinstance(minutes, bool)
            or not isinstance(minutes, int)
            or not MIN_CHECK_INTERVAL_MINUTES <= minutes <= MAX_CHECK_INTERVAL_MINUTES
        ):
            raise InvalidIntervalError(
                minutes, MIN_CHECK_INTERVAL_MINUTES, MAX_CHECK_INTERVAL_MINUTES
            )

        logger.info(
            "check_interval_updating",
            previous=self.settings.check_interval_minutes,
            new=minutes,
        )

        await self.store.set_setting(INTERVAL_SETTING_KEY, str(minutes))
        self.settings.check_interval_minutes = minutes

        await self.stop()
        await self.start()

        logger.info("check_interval_updated", check_interval_minutes=minutes)

    async def load_persisted_interval(self) -> int:
        """Apply an interval stored by a previous update_check_interval()."""
        stored = await self.store.get_setting(INTERVAL_SETTING_KEY)
        if stored is None:
            return self.settings.check_interval_minutes

        try:
            minutes = int(stored)
        except ValueError:
            logger.warning("persisted_interval_invalid", value=stored)
            return self.settings.check_interval_minutes

        if MIN_CHECK_INTERVAL_MINUTES <= minutes <= MAX_CHECK_INTERVAL_MINUTES:
            self.settings.check_interval_minutes = minutes
            logger.info("persisted_interval_loaded", check_interval_minutes=minutes)
        else:
            logger.warning("persisted_interval_out_of_range", value=minutes)
        return self.settings.check_interval_minutes

    # ------------------------------------------------------------------
    # APScheduler events
    # ------------------------------------------------------------------

    def _on_job_executed(self, event: JobExecutionEvent) -> None:
        logger.debug(
            "job_executed",
            job_id=event.job_id,
            scheduled_run_time=str(event.scheduled_run_time),
        )
        self._update_metrics()

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
        self._update_metrics()

    def _on_job_missed(self, event: Any) -> None:
        logger.warning(
            "job_missed",
            job_id=event.job_id,
            scheduled_run_time=str(event.scheduled_run_time),
        )
        self._update_metrics()

    def _update_metrics(self) -> None:
        if self.scheduler is None:
            SCHEDULER_JOBS.set(0)
            return
        SCHEDULER_JOBS.set(len(self.scheduler.get_jobs()))
