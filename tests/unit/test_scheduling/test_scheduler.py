"""Tests for NotifierScheduler."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from infobot.models.config import SchedulerSettings
from infobot.models.scheduler import CycleSummary, SchedulerState
from infobot.scheduling.scheduler import (
    CHECK_JOB_ID,
    CLEANUP_JOB_ID,
    INITIAL_CHECK_JOB_ID,
    INTERVAL_SETTING_KEY,
    NotifierScheduler,
)
from infobot.utils.exceptions import AlreadyRunningError, InvalidIntervalError


def make_summary():
    return CycleSummary(started_at=datetime(2025, 1, 15, tzinfo=timezone.utc))


@pytest.fixture
def store():
    store = MagicMock()
    store.set_setting = AsyncMock()
    store.get_setting = AsyncMock(return_value=None)
    return store


@pytest.fixture
def check_job():
    return AsyncMock(return_value=make_summary())


@pytest.fixture
def cleanup_job():
    return AsyncMock(return_value={"removed": 0})


@pytest.fixture
def scheduler(check_job, cleanup_job, store):
    settings = SchedulerSettings(check_interval_minutes=30, initial_delay_seconds=300)
    return NotifierScheduler(check_job, cleanup_job, store, settings)


class TestLifecycle:
    """Start/stop state machine."""

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, scheduler):
        await scheduler.start()
        try:
            assert scheduler.is_running is True
            job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert job_ids == {CHECK_JOB_ID, CLEANUP_JOB_ID, INITIAL_CHECK_JOB_ID}
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, scheduler):
        await scheduler.start()
        try:
            with pytest.raises(AlreadyRunningError):
                await scheduler.start()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, scheduler):
        await scheduler.stop()
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()

        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.scheduler is None

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, scheduler):
        await scheduler.start()
        await scheduler.stop()
        await scheduler.start()
        try:
            assert scheduler.is_running is True
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_does_not_interrupt_running_cycle(
        self, check_job, cleanup_job, store
    ):
        started = asyncio.Event()
        finished = []

        async def slow_cycle():
            started.set()
            await asyncio.sleep(0.2)
            finished.append(True)
            return make_summary()

        check_job.side_effect = slow_cycle
        scheduler = NotifierScheduler(
            check_job,
            cleanup_job,
            store,
            SchedulerSettings(check_interval_minutes=30, initial_delay_seconds=0),
        )

        await scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=5)
        await scheduler.stop()

        assert scheduler.cycle_in_progress is True
        await scheduler.wait_for_cycle()

        assert finished == [True]
        assert scheduler.last_summary is not None
        assert scheduler.cycle_in_progress is False


class TestCycles:
    """Single-active-cycle guard."""

    @pytest.mark.asyncio
    async def test_manual_check_reports_summary(self, scheduler, check_job):
        result = await scheduler.trigger_manual_check()

        assert result.success is True
        assert result.message == "checked 0 sources, 0 new, 0 sent"
        assert scheduler.last_summary is result.summary
        check_job.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_check_rejected_while_cycle_runs(self, scheduler, check_job):
        release = asyncio.Event()

        async def slow_cycle():
            await release.wait()
            return make_summary()

        check_job.side_effect = slow_cycle
        running = asyncio.create_task(scheduler.run_cycle("scheduled"))
        await asyncio.sleep(0)

        assert scheduler.cycle_in_progress is True
        result = await scheduler.trigger_manual_check()
        assert result.success is False
        assert result.message == "check already in progress"

        release.set()
        assert await running is not None
        assert check_job.await_count == 1
        assert scheduler.cycle_in_progress is False

    @pytest.mark.asyncio
    async def test_scheduled_tick_skipped_while_cycle_runs(self, scheduler, check_job):
        release = asyncio.Event()

        async def slow_cycle():
            await release.wait()
            return make_summary()

        check_job.side_effect = slow_cycle
        running = asyncio.create_task(scheduler.run_cycle("manual"))
        await asyncio.sleep(0)

        assert await scheduler.run_cycle("scheduled") is None

        release.set()
        await running
        assert check_job.await_count == 1

    @pytest.mark.asyncio
    async def test_manual_check_failure(self, scheduler, check_job):
        check_job.side_effect = RuntimeError("boom")

        result = await scheduler.trigger_manual_check()

        assert result.success is False
        assert "boom" in result.message
        assert scheduler.cycle_in_progress is False

    @pytest.mark.asyncio
    async def test_scheduled_check_swallows_errors(self, scheduler, check_job):
        check_job.side_effect = RuntimeError("boom")
        await scheduler._run_scheduled_check()
        await scheduler.wait_for_cycle()

        check_job.assert_awaited_once()
        assert scheduler.cycle_in_progress is False

    @pytest.mark.asyncio
    async def test_scheduled_tick_skipped_when_locked(self, scheduler, check_job):
        async with scheduler._cycle_lock:
            await scheduler._run_scheduled_check()

        await scheduler.wait_for_cycle()
        check_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cleanup_swallows_errors(self, scheduler, cleanup_job):
        cleanup_job.side_effect = RuntimeError("boom")
        await scheduler._run_cleanup()
        cleanup_job.assert_awaited_once()


class TestStatus:
    """Status snapshot and next-check estimate."""

    def test_next_check_is_interval_aligned(self, check_job, cleanup_job, store):
        now = datetime(2025, 1, 15, 12, 7, 30, tzinfo=timezone.utc)
        scheduler = NotifierScheduler(
            check_job,
            cleanup_job,
            store,
            SchedulerSettings(check_interval_minutes=30),
            now_fn=lambda: now,
        )

        assert scheduler.next_check_estimate() == datetime(
            2025, 1, 15, 12, 30, tzinfo=timezone.utc
        )

    def test_next_check_on_boundary(self, check_job, cleanup_job, store):
        now = datetime(2025, 1, 15, 12, 30, tzinfo=timezone.utc)
        scheduler = NotifierScheduler(
            check_job,
            cleanup_job,
            store,
            SchedulerSettings(check_interval_minutes=15),
            now_fn=lambda: now,
        )

        assert scheduler.next_check_estimate() == now

    def test_status_when_stopped(self, scheduler):
        status = scheduler.status()

        assert status.is_running is False
        assert status.active_tasks == []
        assert status.next_check is None
        assert status.check_interval_minutes == 30

    @pytest.mark.asyncio
    async def test_status_when_running(self, scheduler):
        await scheduler.start()
        try:
            status = scheduler.status()
            assert status.is_running is True
            assert CHECK_JOB_ID in status.active_tasks
            assert status.next_check is not None
            assert status.to_dict()["state"] == "running"
        finally:
            await scheduler.stop()


class TestIntervalUpdates:
    """Runtime interval changes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [4, 1441, 0, -5])
    async def test_out_of_range_rejected(self, scheduler, store, minutes):
        with pytest.raises(InvalidIntervalError):
            await scheduler.update_check_interval(minutes)
        store.set_setting.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_integer_rejected(self, scheduler):
        with pytest.raises(InvalidIntervalError):
            await scheduler.update_check_interval(True)
        with pytest.raises(InvalidIntervalError):
            await scheduler.update_check_interval(10.5)

    @pytest.mark.asyncio
    async def test_update_persists_and_restarts(self, scheduler, store):
        await scheduler.start()
        try:
            await scheduler.update_check_interval(15)

            store.set_setting.assert_awaited_once_with(INTERVAL_SETTING_KEY, "15")
            assert scheduler.settings.check_interval_minutes == 15
            assert scheduler.is_running is True
            trigger = scheduler.scheduler.get_job(CHECK_JOB_ID).trigger
            assert trigger.interval.total_seconds() == 15 * 60
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_bounds_accepted(self, scheduler, store):
        await scheduler.update_check_interval(5)
        await scheduler.update_check_interval(1440)
        await scheduler.stop()

        assert scheduler.settings.check_interval_minutes == 1440

    @pytest.mark.asyncio
    async def test_load_persisted_interval(self, scheduler, store):
        store.get_setting = AsyncMock(return_value="45")
        assert await scheduler.load_persisted_interval() == 45
        assert scheduler.settings.check_interval_minutes == 45

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", [None, "abc", "2"])
    async def test_load_persisted_interval_ignored(self, scheduler, store, stored):
        store.get_setting = AsyncMock(return_value=stored)
        assert await scheduler.load_persisted_interval() == 30
