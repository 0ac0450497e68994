"""
Test Module for the Report Scheduler and its triggers.

Tests cover:
- Report time validation and normalization
- Next-run computation across several daily times
- ScheduledJob timer loop: fires once per slot, stop cancels the timer only
- execute_report: execution records, events, failure handling
- Bounded most-recent-first execution history
- Manual trigger de-duplication within the same second
- Rescheduling, hourly refresh and draining in-flight executions
"""

import asyncio
from datetime import datetime, timedelta
from typing import List

import pytest

from reportsday.jobs.scheduler import HOURLY_JOB_NAME, ReportScheduler
from reportsday.jobs.triggers import (
    ScheduleError,
    ScheduledJob,
    next_daily_run,
    next_hourly_run,
    next_run_for_times,
    normalize_time,
    normalize_times,
    parse_time,
)
from reportsday.models.enums import EventType, JobKind, JobState, TriggerKind
from reportsday.models.schemas import DispatchResult
from reportsday.services.aggregator import MetricsAggregator
from reportsday.services.dispatcher import NotificationDispatcher
from reportsday.services.history import HistoricalAnalyzer
from reportsday.tests.conftest import (
    FakeClock,
    FakeMetricsClient,
    RecordingMessenger,
    RecordingViewer,
    flush_events,
)


class AdvancingSleep:
    """Sleep that moves the fake clock forward; blocks forever after ``limit`` calls."""

    def __init__(self, clock: FakeClock, limit: int):
        self.clock = clock
        self.limit = limit
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if len(self.calls) >= self.limit:
            await asyncio.Event().wait()
        self.clock.advance(seconds=seconds)
        await asyncio.sleep(0)


@pytest.fixture
def make_scheduler(tz, clock, no_sleep, broadcaster):
    def factory(
        metrics: FakeMetricsClient,
        messenger: RecordingMessenger = None,
        times=("09:00", "18:00"),
        history_limit: int = 50,
    ) -> ReportScheduler:
        aggregator = MetricsAggregator(metrics, tz, broadcaster=broadcaster, clock=clock)
        analyzer = HistoricalAnalyzer(aggregator, broadcaster=broadcaster, pause_seconds=0, sleep=no_sleep)
        dispatcher = NotificationDispatcher(messenger or RecordingMessenger(), clock, sleep=no_sleep)
        return ReportScheduler(
            aggregator,
            analyzer,
            dispatcher,
            broadcaster,
            times=times,
            clock=clock,
            history_days=2,
            history_limit=history_limit,
        )
    return factory


# =============================================================================
# Time Helpers
# =============================================================================

class TestTimeHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("18:00", "18:00"), ("9:5", "09:05"), ("7", "07:00"), (" 23:59 ", "23:59"), ("00:00", "00:00"),
    ])
    def test_normalize_time(self, value: str, expected: str) -> None:
        assert normalize_time(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "12:00:00", "-1:00"])
    def test_invalid_time(self, value: str) -> None:
        with pytest.raises(ScheduleError):
            normalize_time(value)

    def test_normalize_times_sorts_and_dedupes(self) -> None:
        assert normalize_times(["18:00", "9:00", "09:00"]) == ["09:00", "18:00"]

    def test_empty_times_rejected(self) -> None:
        with pytest.raises(ScheduleError):
            normalize_times([])

    def test_next_daily_run(self, fixed_now: datetime) -> None:
        assert next_daily_run(fixed_now, parse_time("18:00")) == fixed_now.replace(hour=18, minute=0)
        assert next_daily_run(fixed_now, parse_time("09:00")).day == 17

    def test_next_daily_run_is_strictly_after(self, fixed_now: datetime) -> None:
        exactly = fixed_now.replace(hour=18, minute=0)
        assert next_daily_run(exactly, parse_time("18:00")) == exactly + timedelta(days=1)

    def test_next_hourly_run(self, fixed_now: datetime) -> None:
        assert next_hourly_run(fixed_now) == fixed_now.replace(hour=11, minute=0)

    def test_next_run_across_times(self, tz) -> None:
        times = ["09:00", "18:00"]

        at_ten = datetime(2026, 10, 16, 10, 0, tzinfo=tz)
        at_seven_pm = datetime(2026, 10, 16, 19, 0, tzinfo=tz)

        assert next_run_for_times(times, at_ten) == datetime(2026, 10, 16, 18, 0, tzinfo=tz)
        assert next_run_for_times(times, at_seven_pm) == datetime(2026, 10, 17, 9, 0, tzinfo=tz)


# =============================================================================
# ScheduledJob
# =============================================================================

class TestScheduledJob:

    async def test_fires_once_per_slot(self, clock: FakeClock, tz) -> None:
        # Arrange
        fired: List[datetime] = []

        async def callback() -> None:
            fired.append(clock.now)

        sleep = AdvancingSleep(clock, limit=2)
        job = ScheduledJob(
            name="report_18:00",
            kind=JobKind.REPORT,
            compute_next=lambda now: next_daily_run(now, parse_time("18:00")),
            callback=callback,
            clock=clock,
            sleep=sleep,
        )

        # Act
        job.start()
        await flush_events(10)

        # Assert: 10:30 -> 18:00 is 7.5h; then a full day to the next slot
        assert fired == [datetime(2026, 10, 16, 18, 0, tzinfo=tz)]
        assert sleep.calls == [27000.0, 86400.0]
        assert job.next_run == datetime(2026, 10, 17, 18, 0, tzinfo=tz)
        assert job.state == JobState.SCHEDULED

        job.stop()
        await flush_events()
        assert job.state == JobState.STOPPED
        assert job.next_run is None

    async def test_callback_failure_is_contained(self, clock: FakeClock) -> None:
        async def callback() -> None:
            raise RuntimeError("boom")

        job = ScheduledJob("x", JobKind.REPORT, next_hourly_run, callback, clock)

        task = job.fire()
        await task
        await flush_events()

        assert task.exception() is None
        assert job.in_flight == 0

    async def test_stop_leaves_running_callback(self, clock: FakeClock) -> None:
        release = asyncio.Event()
        finished: List[bool] = []

        async def callback() -> None:
            await release.wait()
            finished.append(True)

        job = ScheduledJob("x", JobKind.REPORT, next_hourly_run, callback, clock)
        job.start()
        task = job.fire()
        await flush_events()

        job.stop()
        release.set()
        await task

        assert finished == [True]


# =============================================================================
# Execution
# =============================================================================

class TestExecuteReport:

    async def test_successful_execution(self, make_scheduler, fake_metrics, broadcaster) -> None:
        # Arrange
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        messenger = RecordingMessenger()
        scheduler = make_scheduler(fake_metrics, messenger)

        # Act
        record = await scheduler.execute_report(TriggerKind.SCHEDULED)
        await flush_events()

        # Assert
        assert record.success is True
        assert record.trigger == TriggerKind.SCHEDULED
        assert record.kpis.total_calls == 140
        assert record.dispatch_id == "msg-1"
        assert record.duration_ms >= 0
        assert scheduler.history == [record]
        # report + historical comparison
        assert len(messenger.sent) == 2
        # today once, then two history days
        assert len(fake_metrics.calls) == 3
        types = viewer.types()
        assert types[0] == EventType.EXECUTION_STARTED.value
        assert types[-1] == EventType.EXECUTION_COMPLETE.value

    async def test_dispatch_failure_is_failed_record(self, make_scheduler, fake_metrics, broadcaster) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        messenger = RecordingMessenger(results=[DispatchResult(success=False, error="Messaging not configured")])
        scheduler = make_scheduler(fake_metrics, messenger)

        record = await scheduler.execute_report()
        await flush_events()

        assert record.success is False
        assert record.error == "Messaging not configured"
        assert record.kpis is not None
        assert viewer.types()[-1] == EventType.EXECUTION_ERROR.value

    async def test_unexpected_error_is_failed_record(self, make_scheduler, fake_metrics) -> None:
        scheduler = make_scheduler(fake_metrics)

        async def broken_compare(days, today=None):
            raise RuntimeError("analysis crashed")

        scheduler._analyzer.compare_today = broken_compare

        record = await scheduler.execute_report(TriggerKind.MANUAL)

        assert record.success is False
        assert record.error == "analysis crashed"
        assert record.kpis.total_calls == 140
        assert scheduler.history[0] is record

    async def test_history_is_bounded_and_newest_first(self, make_scheduler, clock: FakeClock) -> None:
        scheduler = make_scheduler(FakeMetricsClient(response=None), history_limit=50)

        for _ in range(60):
            await scheduler.execute_report()
            clock.advance(minutes=1)

        history = scheduler.history
        assert len(history) == 50
        timestamps = [record.timestamp for record in history]
        assert timestamps == sorted(timestamps, reverse=True)
        # The 10 oldest executions dropped out
        assert history[-1].timestamp == datetime(2026, 10, 16, 10, 40, tzinfo=clock.now.tzinfo)

    async def test_refresh_today_pushes_kpis(self, make_scheduler, fake_metrics, broadcaster, messenger) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        scheduler = make_scheduler(fake_metrics, messenger)

        kpis = await scheduler.refresh_today()
        await flush_events()

        assert kpis.total_calls == 140
        assert EventType.D0_UPDATE.value in viewer.types()
        assert messenger.sent == []


# =============================================================================
# Manual Triggers
# =============================================================================

class TestManualTrigger:

    async def test_same_second_is_deduplicated(self, make_scheduler, fake_metrics, clock: FakeClock) -> None:
        # Arrange
        scheduler = make_scheduler(fake_metrics)

        # Act
        first = scheduler.trigger()
        second = scheduler.trigger()
        await scheduler.drain(5)

        # Assert
        assert first.deduplicated is False
        assert first.message == "Report triggered"
        assert second.deduplicated is True
        assert second.message == "Report already triggered"
        assert len(scheduler.history) == 1
        assert scheduler.history[0].trigger == TriggerKind.MANUAL

    async def test_next_second_triggers_again(self, make_scheduler, fake_metrics, clock: FakeClock) -> None:
        scheduler = make_scheduler(fake_metrics)

        scheduler.trigger()
        clock.advance(seconds=1)
        ack = scheduler.trigger()
        await scheduler.drain(5)

        assert ack.deduplicated is False
        assert len(scheduler.history) == 2

    async def test_drain_cancels_slow_executions(self, make_scheduler, fake_metrics) -> None:
        scheduler = make_scheduler(fake_metrics)

        async def hanging(reference=None):
            await asyncio.Event().wait()

        scheduler._aggregator.compute_daily_kpis = hanging
        scheduler.trigger()
        await flush_events()

        assert scheduler.in_flight == 1
        assert await scheduler.drain(0.01) is False
        await flush_events()
        assert scheduler.in_flight == 0


# =============================================================================
# Job Management
# =============================================================================

class TestJobManagement:

    async def test_start_creates_report_and_hourly_jobs(self, make_scheduler, fake_metrics) -> None:
        scheduler = make_scheduler(fake_metrics)

        scheduler.start()
        names = sorted(job.name for job in scheduler.jobs)
        await scheduler.stop_all()

        assert names == sorted(["report_09:00", "report_18:00", HOURLY_JOB_NAME])
        assert scheduler.running is False
        assert scheduler.jobs == []

    async def test_get_next_run(self, make_scheduler, fake_metrics, tz) -> None:
        scheduler = make_scheduler(fake_metrics)

        assert scheduler.get_next_run() == datetime(2026, 10, 16, 18, 0, tzinfo=tz)
        assert scheduler.get_next_run(datetime(2026, 10, 16, 19, 0, tzinfo=tz)) == datetime(2026, 10, 17, 9, 0, tzinfo=tz)

    async def test_set_scheduled_times_recreates_jobs(self, make_scheduler, fake_metrics, broadcaster) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        scheduler = make_scheduler(fake_metrics)
        scheduler.start()

        times = scheduler.set_scheduled_times(["12:30", "8:00"])
        names = sorted(job.name for job in scheduler.jobs)
        await scheduler.stop_all()
        await flush_events()

        assert times == ["08:00", "12:30"]
        assert names == sorted(["report_08:00", "report_12:30", HOURLY_JOB_NAME])
        messages = [e["payload"]["message"] for e in viewer.received if e["type"] == EventType.LOG.value]
        assert "Report times updated: 08:00, 12:30" in messages

    async def test_invalid_times_keep_schedule(self, make_scheduler, fake_metrics) -> None:
        scheduler = make_scheduler(fake_metrics)

        with pytest.raises(ScheduleError):
            scheduler.set_scheduled_times(["09:00", "25:00"])

        assert scheduler.scheduled_times == ["09:00", "18:00"]

    async def test_set_times_while_stopped_does_not_start(self, make_scheduler, fake_metrics) -> None:
        scheduler = make_scheduler(fake_metrics)

        scheduler.set_scheduled_times(["07:00"])

        assert scheduler.running is False
        assert scheduler.scheduled_times == ["07:00"]
