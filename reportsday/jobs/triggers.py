"""
Recurring triggers for the report scheduler.

A ScheduledJob is an asyncio task that sleeps until the next occurrence of
its trigger, then launches the job callback as a separate task and goes back
to sleep. Callbacks therefore never delay the timer, and a slow run can
overlap with the next one.

Stopping a job cancels its timer only; callbacks already running finish on
their own.

Trigger helpers:
- normalize_time("9:5") -> "09:05"; invalid strings raise ScheduleError
- next_daily_run(now, time(18, 0)) -> next 18:00 strictly after ``now``
- next_hourly_run(now) -> next top of the hour strictly after ``now``
"""

import asyncio
import logging
import re
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable, Coroutine, Iterable, List, Optional, Set

from reportsday.core.timeutils import Clock
from reportsday.models.enums import JobKind, JobState
from reportsday.models.schemas import JobInfo


logger = logging.getLogger(__name__)


_TIME_PATTERN = re.compile(r"^(\d{1,2})(?::(\d{1,2}))?$")


class ScheduleError(ValueError):
    """Raised for report times that are not valid "HH:MM" strings."""


def normalize_time(value: str) -> str:
    """
    Validate a report time and zero-pad it to "HH:MM".

    A bare hour ("18") means minute 0.

    Raises:
        ScheduleError: If the value is not a valid time of day
    """
    match = _TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ScheduleError(f"Invalid report time {value!r}, expected HH:MM")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if hour > 23 or minute > 59:
        raise ScheduleError(f"Invalid report time {value!r}, out of range")
    return f"{hour:02d}:{minute:02d}"


def normalize_times(values: Iterable[str]) -> List[str]:
    """Normalize, de-duplicate and sort report times; at least one is required."""
    times = sorted({normalize_time(v) for v in values})
    if not times:
        raise ScheduleError("At least one report time is required")
    return times


def parse_time(value: str) -> time:
    hour, minute = normalize_time(value).split(":")
    return time(int(hour), int(minute))


def next_daily_run(now: datetime, at: time) -> datetime:
    """First occurrence of wall-clock ``at`` strictly after ``now``, in now's zone."""
    candidate = datetime.combine(now.date(), at, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(now.date() + timedelta(days=1), at, tzinfo=now.tzinfo)
    return candidate


def next_hourly_run(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def next_run_for_times(times: Iterable[str], now: datetime) -> Optional[datetime]:
    """
    Earliest upcoming run across several daily times.

    Example:
        With times ["09:00", "18:00"]: at 10:00 the answer is today 18:00;
        at 19:00 it is tomorrow 09:00.
    """
    runs = [next_daily_run(now, parse_time(t)) for t in times]
    return min(runs) if runs else None


Spawner = Callable[[Coroutine[Any, Any, Any]], "asyncio.Task[Any]"]


class ScheduledJob:
    """A named recurring job driven by an asyncio timer task."""

    def __init__(
        self,
        name: str,
        kind: JobKind,
        compute_next: Callable[[datetime], datetime],
        callback: Callable[[], Awaitable[Any]],
        clock: Clock,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        spawn: Optional[Spawner] = None,
    ):
        self.name = name
        self.kind = kind
        self._compute_next = compute_next
        self._callback = callback
        self._clock = clock
        self._sleep = sleep
        self._spawn = spawn or asyncio.create_task
        self._timer: Optional[asyncio.Task] = None
        self._next_run: Optional[datetime] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def next_run(self) -> Optional[datetime]:
        if self._stopped:
            return None
        return self._next_run or self._compute_next(self._clock())

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def state(self) -> JobState:
        if self._stopped or self._timer is None:
            return JobState.STOPPED
        if self._in_flight:
            return JobState.RUNNING
        return JobState.SCHEDULED

    def info(self) -> JobInfo:
        return JobInfo(
            name=self.name,
            kind=self.kind,
            state=self.state,
            next_run=self.next_run,
            in_flight=self.in_flight,
        )

    def start(self) -> None:
        if self._timer is not None and not self._timer.done():
            return
        self._stopped = False
        self._timer = asyncio.create_task(self._run(), name=f"job:{self.name}")

    def stop(self) -> None:
        """Cancel the timer; runs already in flight are left alone."""
        self._stopped = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

    async def _run(self) -> None:
        last_target: Optional[datetime] = None
        while True:
            now = self._clock()
            if last_target is not None and now < last_target:
                # Sleep can return slightly early; never fire the same slot twice
                now = last_target
            target = self._compute_next(now)
            self._next_run = target
            await self._sleep(max((target - self._clock()).total_seconds(), 0))
            last_target = target
            self.fire()

    def fire(self) -> "asyncio.Task[Any]":
        """Launch the callback as its own task."""
        logger.info(f"Job {self.name} firing")
        task = self._spawn(self._invoke())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Job {self.name} failed: {e}", exc_info=True)
