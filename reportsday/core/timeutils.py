"""
Time helpers shared by the aggregator, analyzer, cache and scheduler.

Every "today" in the service is defined in the configured IANA time zone
(default America/Sao_Paulo). Components take a ``Clock`` (a zero-argument
callable returning an aware datetime) so tests can pin the current instant.
"""

import math
from datetime import datetime, time, tzinfo
from functools import lru_cache
from typing import Callable
from zoneinfo import ZoneInfo


Clock = Callable[[], datetime]


@lru_cache(maxsize=None)
def get_timezone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for ``name`` (cached)."""
    return ZoneInfo(name)


def make_clock(tz: tzinfo) -> Clock:
    """Build a clock that returns the current instant in ``tz``."""
    def _now() -> datetime:
        return datetime.now(tz)
    return _now


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the day containing ``moment``, in the same zone."""
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def end_of_day(moment: datetime) -> datetime:
    """Last representable instant (23:59:59.999) of the day containing ``moment``."""
    return datetime.combine(moment.date(), time(23, 59, 59, 999000), tzinfo=moment.tzinfo)


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves rounded up.

    Python's round() uses banker's rounding (round(2.5) == 2); the reports
    and baselines always round .5 upward.

    Example:
        >>> round_half_up(14.5)
        15
        >>> round_half_up(64.49)
        64
    """
    return int(math.floor(value + 0.5))
