"""
Report scheduler.

Owns the recurring jobs and the report execution path:

- report_HH:MM (one per configured time): full report run
- d0_update (every hour on the hour): recompute today's KPIs and push them
  to live viewers; never dispatches

execute_report() runs:
    KPIs -> historical comparison -> dispatch -> execution record -> broadcast
and never raises; any failure becomes a failed ExecutionRecord.

Executions are not serialized: scheduled runs, hourly refreshes and manual
triggers can overlap. The only guard is that two manual triggers within the
same wall-clock second collapse into one. Execution history is a bounded,
most-recent-first buffer (oldest entries drop out).

Usage:
    scheduler = ReportScheduler(aggregator, analyzer, dispatcher, broadcaster,
                                times=["09:00", "18:00"], clock=clock)
    scheduler.start()
    ack = scheduler.trigger()
    await scheduler.stop_all()
"""

import asyncio
import logging
import time as time_module
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Deque, Dict, Iterable, List, Optional, Set

from reportsday.core.timeutils import Clock
from reportsday.jobs.triggers import (
    ScheduledJob,
    next_daily_run,
    next_hourly_run,
    next_run_for_times,
    normalize_times,
    parse_time,
)
from reportsday.models.enums import EventType, JobKind, LogLevel, TriggerKind
from reportsday.models.schemas import (
    BroadcastEvent,
    DailyComparison,
    ExecutionRecord,
    JobInfo,
    KPISnapshot,
    TriggerAck,
)
from reportsday.services.aggregator import MetricsAggregator
from reportsday.services.broadcaster import EventBroadcaster
from reportsday.services.dispatcher import NotificationDispatcher
from reportsday.services.history import HistoricalAnalyzer


logger = logging.getLogger(__name__)


HOURLY_JOB_NAME = "d0_update"
DEFAULT_HISTORY_LIMIT = 50


def report_job_name(at: str) -> str:
    return f"report_{at}"


class ReportScheduler:
    """Schedules and executes the daily report pipeline."""

    def __init__(
        self,
        aggregator: MetricsAggregator,
        analyzer: HistoricalAnalyzer,
        dispatcher: NotificationDispatcher,
        broadcaster: EventBroadcaster,
        times: Iterable[str],
        clock: Clock,
        history_days: int = 15,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._aggregator = aggregator
        self._analyzer = analyzer
        self._dispatcher = dispatcher
        self._broadcaster = broadcaster
        self._times = normalize_times(times)
        self._clock = clock
        self._history_days = history_days
        self._sleep = sleep

        self._jobs: Dict[str, ScheduledJob] = {}
        self._history: Deque[ExecutionRecord] = deque(maxlen=history_limit)
        self._tasks: Set[asyncio.Task] = set()
        self._last_manual_second: Optional[int] = None

    # -------------------------------------------------------------------------
    # Job management
    # -------------------------------------------------------------------------

    @property
    def scheduled_times(self) -> List[str]:
        return list(self._times)

    @property
    def jobs(self) -> List[JobInfo]:
        return [job.info() for job in self._jobs.values()]

    @property
    def running(self) -> bool:
        return bool(self._jobs)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _build_jobs(self) -> Dict[str, ScheduledJob]:
        jobs: Dict[str, ScheduledJob] = {}
        for at in self._times:
            target = parse_time(at)
            jobs[report_job_name(at)] = ScheduledJob(
                name=report_job_name(at),
                kind=JobKind.REPORT,
                compute_next=lambda now, target=target: next_daily_run(now, target),
                callback=self._run_scheduled_report,
                clock=self._clock,
                sleep=self._sleep,
                spawn=self._spawn,
            )
        jobs[HOURLY_JOB_NAME] = ScheduledJob(
            name=HOURLY_JOB_NAME,
            kind=JobKind.HOURLY_REFRESH,
            compute_next=next_hourly_run,
            callback=self.refresh_today,
            clock=self._clock,
            sleep=self._sleep,
            spawn=self._spawn,
        )
        return jobs

    def start(self) -> None:
        """Create and start every job for the configured times."""
        if self._jobs:
            return
        self._jobs = self._build_jobs()
        for job in self._jobs.values():
            job.start()
        for at in self._times:
            logger.info(f"Report scheduled daily at {at}")
        logger.info("Scheduler started")

    def _stop_jobs(self) -> None:
        for job in self._jobs.values():
            job.stop()
        self._jobs = {}

    async def stop_all(self, drain_timeout: Optional[float] = None) -> None:
        """
        Stop every job timer.

        Args:
            drain_timeout: When given, also wait up to this many seconds for
                executions already in flight
        """
        self._stop_jobs()
        logger.info("Scheduler: all jobs stopped")
        if drain_timeout is not None:
            await self.drain(drain_timeout)

    def set_scheduled_times(self, times: Iterable[str]) -> List[str]:
        """
        Replace the daily report times and recreate the jobs.

        Executions already in flight keep running.

        Raises:
            ScheduleError: If any time is invalid; the current schedule is kept
        """
        normalized = normalize_times(times)
        was_running = self.running
        self._stop_jobs()
        self._times = normalized
        if was_running:
            self.start()
        logger.info(f"Report times updated: {', '.join(normalized)}")
        self._broadcaster.log(f"Report times updated: {', '.join(normalized)}", LogLevel.EVENT)
        return list(normalized)

    def get_next_run(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Next report time strictly after ``now`` (default: the clock)."""
        return next_run_for_times(self._times, now or self._clock())

    @property
    def history(self) -> List[ExecutionRecord]:
        """Execution records, most recent first."""
        return list(self._history)

    def _record(self, execution: ExecutionRecord) -> None:
        # deque(maxlen) drops the oldest entry from the right
        self._history.appendleft(execution)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _run_scheduled_report(self) -> None:
        logger.info("Running scheduled report")
        await self.execute_report(TriggerKind.SCHEDULED)

    async def execute_report(self, trigger: TriggerKind = TriggerKind.SCHEDULED) -> ExecutionRecord:
        """
        Run the full report pipeline once.

        Returns:
            The ExecutionRecord that was added to the history
        """
        started = time_module.monotonic()
        kpis: Optional[KPISnapshot] = None

        self._broadcaster.publish(BroadcastEvent(
            type=EventType.EXECUTION_STARTED,
            payload={"trigger": trigger.value},
        ))
        self._broadcaster.log("Generating report...")

        try:
            kpis = await self._aggregator.compute_daily_kpis()
            self._broadcaster.log(f"KPIs computed: {kpis.total_calls} calls")

            self._broadcaster.log(f"Loading historical comparison ({self._history_days} days)...")
            comparison: DailyComparison = await self._analyzer.compare_today(
                days=self._history_days,
                today=kpis,
            )

            result = await self._dispatcher.send_report(kpis, comparison)
            elapsed_ms = int((time_module.monotonic() - started) * 1000)

            execution = ExecutionRecord(
                timestamp=self._clock(),
                trigger=trigger,
                success=result.success,
                kpis=kpis,
                duration_ms=elapsed_ms,
                dispatch_id=result.dispatch_id,
                error=result.error,
            )
        except Exception as e:
            logger.error(f"Report execution failed: {e}", exc_info=True)
            execution = ExecutionRecord(
                timestamp=self._clock(),
                trigger=trigger,
                success=False,
                kpis=kpis,
                duration_ms=int((time_module.monotonic() - started) * 1000),
                error=str(e) or type(e).__name__,
            )

        self._record(execution)
        payload = execution.model_dump(mode="json")

        if execution.success:
            self._broadcaster.log(f"Report sent successfully ({execution.duration_ms}ms)", LogLevel.SUCCESS)
            self._broadcaster.publish(BroadcastEvent(type=EventType.EXECUTION_COMPLETE, payload=payload))
        else:
            self._broadcaster.log(f"Report failed: {execution.error}", LogLevel.ERROR)
            self._broadcaster.publish(BroadcastEvent(type=EventType.EXECUTION_ERROR, payload=payload))

        return execution

    async def refresh_today(self) -> KPISnapshot:
        """Recompute today's KPIs and push them to viewers."""
        kpis = await self._aggregator.compute_daily_kpis()
        self._broadcaster.kpi_update(kpis)
        self._broadcaster.log("D0 KPIs updated")
        return kpis

    def trigger(self) -> TriggerAck:
        """
        Start a manual report run in the background and return immediately.

        A second manual trigger within the same wall-clock second is ignored.
        """
        second = int(self._clock().timestamp())
        if self._last_manual_second == second:
            logger.info("Manual trigger ignored, one already started this second")
            return TriggerAck(
                success=True,
                message="Report already triggered",
                deduplicated=True,
            )
        self._last_manual_second = second

        logger.info("Manual report trigger")
        self._broadcaster.log("Manual trigger started", LogLevel.EVENT)
        self._spawn(self.execute_report(TriggerKind.MANUAL))
        return TriggerAck(success=True, message="Report triggered")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 30.0) -> bool:
        """
        Wait for in-flight executions.

        Returns:
            True if everything finished within ``timeout``
        """
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return True
        logger.info(f"Waiting for {len(pending)} in-flight executions")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            logger.warning(f"Cancelled {len(still_pending)} executions still running at shutdown")
        return not still_pending
