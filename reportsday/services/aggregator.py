"""
KPI Aggregator Service

Turns the metrics provider's answer into a KPISnapshot for one day.

The provider answers in one of two shapes:
1. Aggregate object (report_01 macro): totalCallAttendedReceptive,
   totalCallAbandonedQueue, totalCallAbandonedURA,
   timeMediumWaitingAttendance ("HH:MM:SS"), sla_attendance,
   timeMediumDurationCall. Only inbound calls are counted, so
   total = answered + abandoned + retained in IVR and other = 0.
2. List of call rows: every row is normalized and classified by the
   ingestion adapter, then counted per category and per local hour.

compute_daily_kpis() never raises. Provider problems (no data, HTTP errors)
produce an all-zero snapshot; unexpected internal errors produce an all-zero
snapshot carrying the error message.
"""

import logging
from collections import Counter
from datetime import date, datetime, time, tzinfo
from typing import Any, Collection, Dict, List, Optional

from reportsday.clients.metrics_client import MetricsClient
from reportsday.core.timeutils import Clock, end_of_day, make_clock, round_half_up, start_of_day
from reportsday.models.enums import CallCategory, KPISource, LogLevel
from reportsday.models.schemas import CallRecord, HistoricalRecord, KPISnapshot, PeakHour
from reportsday.services.broadcaster import EventBroadcaster
from reportsday.services.ingestion import normalize_call_list, parse_count, parse_duration


logger = logging.getLogger(__name__)


# Aggregate response fields
FIELD_ANSWERED = "totalCallAttendedReceptive"
FIELD_ABANDONED = "totalCallAbandonedQueue"
FIELD_RETAINED_IVR = "totalCallAbandonedURA"
FIELD_AVG_WAIT = "timeMediumWaitingAttendance"
FIELD_SLA = "sla_attendance"
FIELD_AVG_DURATION = "timeMediumDurationCall"

# The provider answers 417 for many past days; those fetches are not worth an error line
DEFAULT_QUIET_STATUSES = (417,)


def _is_empty(data: Any) -> bool:
    return data is None or (isinstance(data, list) and not data)


def count_categories(records: List[CallRecord]) -> Dict[CallCategory, int]:
    counts = Counter(record.category for record in records)
    return {category: counts.get(category, 0) for category in CallCategory}


def find_peak_hour(records: List[CallRecord]) -> Optional[PeakHour]:
    """
    Busiest local hour among records with a timestamp.

    Ties go to the earliest hour label. Returns None when no record carries
    a usable timestamp.
    """
    hour_counts = Counter(
        f"{record.timestamp.hour:02d}:00"
        for record in records
        if record.timestamp is not None
    )
    if not hour_counts:
        return None
    hour, count = min(hour_counts.items(), key=lambda item: (-item[1], item[0]))
    return PeakHour(hour=hour, count=count)


class MetricsAggregator:
    """Computes daily KPI snapshots from the metrics provider."""

    def __init__(
        self,
        metrics_client: MetricsClient,
        tz: tzinfo,
        broadcaster: Optional[EventBroadcaster] = None,
        clock: Optional[Clock] = None,
        quiet_statuses: Collection[int] = DEFAULT_QUIET_STATUSES,
    ):
        self._metrics = metrics_client
        self._tz = tz
        self._broadcaster = broadcaster
        self._clock = clock or make_clock(tz)
        self._quiet_statuses = tuple(quiet_statuses)

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return self._clock()

    def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        if level == LogLevel.ERROR:
            logger.error(message)
        elif level == LogLevel.WARNING:
            logger.warning(message)
        else:
            logger.info(message)
        if self._broadcaster is not None:
            self._broadcaster.log(message, level)

    async def compute_daily_kpis(self, reference: Optional[datetime] = None) -> KPISnapshot:
        """
        Compute the KPI snapshot for the day containing ``reference``.

        For today the window runs from local midnight until now; for any
        other day it covers the whole day.

        Args:
            reference: Any instant of the target day (default: now)

        Returns:
            KPISnapshot; all-zero when the provider has no data
        """
        now = self._clock()
        ref = (reference or now).astimezone(self._tz)
        start = start_of_day(ref)
        end = now if ref.date() == now.date() else end_of_day(ref)

        try:
            self._log("Computing KPIs for today...")
            data = await self._metrics.fetch_aggregate(start, end)

            if _is_empty(data):
                self._log("No call data available, reporting zeros", LogLevel.WARNING)
                return KPISnapshot.empty(now)

            if isinstance(data, dict):
                snapshot = self._from_aggregate(data, now)
            else:
                snapshot = self._from_call_list(data, now)

            self._log(
                f"KPIs: {snapshot.total_calls} total | {snapshot.answered} answered | "
                f"{snapshot.abandoned} abandoned | {snapshot.retained_ivr} retained in IVR",
                LogLevel.SUCCESS,
            )
            return snapshot

        except Exception as e:
            logger.error(f"Failed to compute daily KPIs: {e}", exc_info=True)
            if self._broadcaster is not None:
                self._broadcaster.log(f"Failed to compute KPIs: {e}", LogLevel.ERROR)
            return KPISnapshot.empty(now, error=str(e) or type(e).__name__)

    def _from_aggregate(self, data: Dict[str, Any], now: datetime) -> KPISnapshot:
        answered = parse_count(data.get(FIELD_ANSWERED))
        abandoned = parse_count(data.get(FIELD_ABANDONED))
        retained_ivr = parse_count(data.get(FIELD_RETAINED_IVR))
        total = answered + abandoned + retained_ivr

        if total == 0:
            # Usually an empty period, restrictive filters or an expired token
            self._log("Metrics API returned an aggregate with every counter at zero", LogLevel.WARNING)

        return KPISnapshot(
            total_calls=total,
            answered=answered,
            abandoned=abandoned,
            retained_ivr=retained_ivr,
            other=0,
            peak_hour=None,
            average_wait_seconds=parse_duration(data.get(FIELD_AVG_WAIT) or "00:00:00"),
            generated_at=now,
            source=KPISource.AGGREGATE,
            service_level=str(data.get(FIELD_SLA) or "0%"),
            average_call_duration=str(data.get(FIELD_AVG_DURATION) or "00:00:00"),
        )

    def _from_call_list(self, rows: List[Any], now: datetime) -> KPISnapshot:
        records = normalize_call_list(rows, self._tz)
        if not records:
            return KPISnapshot.empty(now)

        counts = count_categories(records)
        total_wait = sum(record.wait_seconds for record in records)

        return KPISnapshot(
            total_calls=len(records),
            answered=counts[CallCategory.ANSWERED],
            abandoned=counts[CallCategory.ABANDONED],
            retained_ivr=counts[CallCategory.RETAINED_IVR],
            other=counts[CallCategory.OTHER],
            peak_hour=find_peak_hour(records),
            average_wait_seconds=round_half_up(total_wait / len(records)),
            generated_at=now,
            source=KPISource.CALL_LIST,
        )

    async def fetch_day_record(self, day: date) -> Optional[HistoricalRecord]:
        """
        Fetch the full-day counts for one prior day.

        Returns:
            HistoricalRecord, or None when the provider has no data for the
            day or the request fails
        """
        start = start_of_day(datetime.combine(day, time.min, tzinfo=self._tz))
        end = end_of_day(start)

        try:
            data = await self._metrics.fetch_aggregate(start, end, quiet_statuses=self._quiet_statuses)
            if _is_empty(data):
                return None
            return self._day_record(day, data)
        except Exception as e:
            logger.error(f"Failed to fetch {day.strftime('%d/%m')}: {e}", exc_info=True)
            return None

    def _day_record(self, day: date, data: Any) -> HistoricalRecord:
        if isinstance(data, dict):
            answered = parse_count(data.get(FIELD_ANSWERED))
            abandoned = parse_count(data.get(FIELD_ABANDONED))
            retained_ivr = parse_count(data.get(FIELD_RETAINED_IVR))
            total = answered + abandoned + retained_ivr
        else:
            records = normalize_call_list(data, self._tz)
            counts = count_categories(records)
            answered = counts[CallCategory.ANSWERED]
            abandoned = counts[CallCategory.ABANDONED]
            retained_ivr = counts[CallCategory.RETAINED_IVR]
            total = len(records)

        return HistoricalRecord(
            date=day,
            answered=answered,
            abandoned=abandoned,
            retained_ivr=retained_ivr,
            total=total,
        )
