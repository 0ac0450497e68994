"""
Historical Analyzer Service

Builds a rolling baseline from the last N days and classifies today's KPIs
against it.

Baseline:
- Days 1..N before the reference day are fetched one at a time, with a short
  pause between requests so the provider is not hammered.
- Days that fail or return no data are dropped; the means are computed over
  the days that did produce data (rounded half-up).
- If no day produced data there is no baseline (None).

Level classification (ratio = current / mean * 100, rounded half-up):
    ratio < 70          -> below normal  🔴
    70 <= ratio < 100   -> normal        🟡
    100 <= ratio < 130  -> high          🟢
    ratio >= 130        -> very high     🔥
    mean == 0           -> undefined     ⚪ (regardless of current)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from reportsday.core.timeutils import round_half_up
from reportsday.models.enums import LevelTier, LogLevel
from reportsday.models.schemas import (
    DailyComparison,
    HistoricalMeans,
    HistoricalRecord,
    HistoricalSummary,
    KPISnapshot,
    LevelClassification,
    MetricClassifications,
)
from reportsday.services.aggregator import MetricsAggregator
from reportsday.services.broadcaster import EventBroadcaster


logger = logging.getLogger(__name__)


DEFAULT_HISTORY_DAYS = 15

# Tier lower bounds, checked from the top
VERY_HIGH_THRESHOLD = 130
HIGH_THRESHOLD = 100
NORMAL_THRESHOLD = 70


def classify_level(current: int, mean: int) -> LevelClassification:
    """
    Compare a current metric value against its baseline mean.

    Args:
        current: Today's value
        mean: Baseline mean

    Returns:
        LevelClassification; ratio is None when the mean is 0

    Example:
        >>> classify_level(65, 100).tier
        <LevelTier.BELOW_NORMAL: 'below_normal'>
        >>> classify_level(130, 100).tier
        <LevelTier.VERY_HIGH: 'very_high'>
    """
    if mean == 0:
        tier = LevelTier.UNDEFINED
        return LevelClassification(
            tier=tier,
            label=tier.label,
            indicator=tier.indicator,
            ratio=None,
            current=current,
            mean=mean,
        )

    ratio = round_half_up(current * 100 / mean)

    if ratio >= VERY_HIGH_THRESHOLD:
        tier = LevelTier.VERY_HIGH
    elif ratio >= HIGH_THRESHOLD:
        tier = LevelTier.HIGH
    elif ratio >= NORMAL_THRESHOLD:
        tier = LevelTier.NORMAL
    else:
        tier = LevelTier.BELOW_NORMAL

    return LevelClassification(
        tier=tier,
        label=tier.label,
        indicator=tier.indicator,
        ratio=ratio,
        current=current,
        mean=mean,
        description=f"{ratio}% of the mean (expected: {mean})",
    )


def compute_means(records: List[HistoricalRecord]) -> HistoricalMeans:
    days = len(records)
    return HistoricalMeans(
        answered=round_half_up(sum(r.answered for r in records) / days),
        abandoned=round_half_up(sum(r.abandoned for r in records) / days),
        retained_ivr=round_half_up(sum(r.retained_ivr for r in records) / days),
        total=round_half_up(sum(r.total for r in records) / days),
    )


def summarize(total: LevelClassification) -> str:
    """One-line summary of the day driven by the total-volume classification."""
    ratio = total.ratio if total.ratio is not None else 0
    return f"Day {total.indicator} {total.label} - {ratio}% of expected"


class HistoricalAnalyzer:
    """Rolling-baseline comparison of today's KPIs."""

    def __init__(
        self,
        aggregator: MetricsAggregator,
        broadcaster: Optional[EventBroadcaster] = None,
        pause_seconds: float = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._aggregator = aggregator
        self._broadcaster = broadcaster
        self._pause_seconds = pause_seconds
        self._sleep = sleep

    def _broadcast(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        if self._broadcaster is not None:
            self._broadcaster.log(message, level)

    async def build_history(
        self,
        days: int = DEFAULT_HISTORY_DAYS,
        reference: Optional[datetime] = None,
    ) -> Optional[HistoricalSummary]:
        """
        Fetch the last ``days`` days before ``reference`` and average them.

        Requests run sequentially with ``pause_seconds`` between them.

        Returns:
            HistoricalSummary, or None if no day produced data
        """
        if days < 1:
            raise ValueError("days must be >= 1")

        ref = reference or self._aggregator.now()
        logger.info(f"Loading history for the last {days} days")
        self._broadcast(f"📊 Loading history ({days} days)...")

        records: List[HistoricalRecord] = []
        for i in range(1, days + 1):
            day = (ref - timedelta(days=i)).date()
            logger.debug(f"History day {i}/{days}: {day.strftime('%d/%m/%Y')}")

            record = await self._aggregator.fetch_day_record(day)
            if record is not None:
                records.append(record)

            if i < days:
                await self._sleep(self._pause_seconds)

        if not records:
            logger.warning("No historical data found")
            self._broadcast("⚠️ No historical data", LogLevel.WARNING)
            return None

        means = compute_means(records)
        logger.info(f"{days}-day mean: {means.answered} answered/day over {len(records)} days")
        self._broadcast(
            f"✅ History: {len(records)} days | Mean: {means.answered} answered/day",
            LogLevel.SUCCESS,
        )

        return HistoricalSummary(
            requested_days=days,
            days_with_data=len(records),
            records=records,
            means=means,
            generated_at=self._aggregator.now(),
        )

    async def compare_today(
        self,
        days: int = DEFAULT_HISTORY_DAYS,
        today: Optional[KPISnapshot] = None,
    ) -> DailyComparison:
        """
        Classify today's KPIs against the rolling baseline.

        Args:
            days: Baseline window size
            today: Already computed snapshot for today (computed when omitted)

        Returns:
            DailyComparison; history and classifications are None with an
            error message when no baseline could be built
        """
        logger.info("Comparing today against history")
        kpis = today if today is not None else await self._aggregator.compute_daily_kpis()
        history = await self.build_history(days)

        if history is None:
            return DailyComparison(
                today=kpis,
                error="No historical data available for comparison",
            )

        means = history.means
        classifications = MetricClassifications(
            answered=classify_level(kpis.answered, means.answered),
            abandoned=classify_level(kpis.abandoned, means.abandoned),
            retained_ivr=classify_level(kpis.retained_ivr, means.retained_ivr),
            total=classify_level(kpis.total_calls, means.total),
        )

        for name in ("answered", "abandoned", "retained_ivr"):
            level: LevelClassification = getattr(classifications, name)
            logger.info(f"{name}: {level.current} ({level.indicator} {level.label})")

        return DailyComparison(
            today=kpis,
            history=history,
            classifications=classifications,
            summary=summarize(classifications.total),
        )
