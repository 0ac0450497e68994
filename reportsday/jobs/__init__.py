"""
Scheduled Jobs for ReportsDAY.

- triggers: ScheduledJob (asyncio timer task) and time helpers
- scheduler: ReportScheduler, owning the daily report jobs, the hourly D0
  refresh, manual triggers and the execution history

Usage:
    from reportsday.jobs import ReportScheduler, ScheduleError

    scheduler.set_scheduled_times(["09:00", "18:00"])
    next_run = scheduler.get_next_run()
"""

from reportsday.jobs.triggers import (
    ScheduleError,
    ScheduledJob,
    normalize_time,
    normalize_times,
    next_daily_run,
    next_hourly_run,
    next_run_for_times,
)
from reportsday.jobs.scheduler import ReportScheduler


__all__ = [
    'ScheduleError',
    'ScheduledJob',
    'normalize_time',
    'normalize_times',
    'next_daily_run',
    'next_hourly_run',
    'next_run_for_times',
    'ReportScheduler',
]
