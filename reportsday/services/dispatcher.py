"""
Notification Dispatcher

Formats KPI snapshots and historical comparisons and hands them to the
configured messaging client.

A report is sent as up to two independent messages:
1. The structured daily report (received / answered / abandoned, period,
   date, peak hour)
2. When (1) succeeded and a comparison with classifications is available:
   after a short delay, a text message with the historical comparison

The second message is best-effort; its failure is reported in
DispatchResult.followup and does not mark the report as failed. There are
no retries and no delivery confirmation.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from reportsday.clients.messaging import MessagingClient
from reportsday.core.timeutils import Clock, round_half_up
from reportsday.models.enums import ReportPeriod
from reportsday.models.schemas import (
    DailyComparison,
    DispatchResult,
    KPISnapshot,
    LevelClassification,
    OutboundMessage,
    QueuePeak,
    ReportPayload,
)


logger = logging.getLogger(__name__)


DIVIDER = "━━━━━━━━━━━━━━━━━━━━━━━━"


def report_period(moment: datetime) -> ReportPeriod:
    return ReportPeriod.MORNING if moment.hour < 12 else ReportPeriod.AFTERNOON


def build_report_payload(kpis: KPISnapshot, now: datetime) -> ReportPayload:
    """Structured report for ``kpis`` as of local time ``now``."""
    queues = []
    if kpis.peak_hour is not None:
        queues.append(QueuePeak(moment=kpis.peak_hour.hour, people=kpis.peak_hour.count))

    return ReportPayload(
        received=kpis.total_calls,
        answered=kpis.answered,
        abandoned=kpis.abandoned,
        period=report_period(now),
        date=now.strftime("%d/%m/%Y"),
        queues=queues,
    )


def _percent_line(level: LevelClassification) -> str:
    ratio = level.ratio if level.ratio is not None else 0
    return f"   {level.indicator} {ratio}% of expected"


def format_historical_message(comparison: DailyComparison) -> Optional[str]:
    """
    Text of the historical comparison message.

    Returns None when the comparison carries no classifications.
    """
    if comparison.classifications is None or comparison.history is None:
        return None

    today = comparison.today
    levels = comparison.classifications
    means = comparison.history.means
    total = levels.total
    total_ratio = total.ratio if total.ratio is not None else 0

    lines = [
        f"{total.indicator} *Operation level: {total.label}*",
        f"compared with the last {comparison.history.requested_days} days",
        "",
        "📊 *Breakdown:*",
        DIVIDER,
        "",
        f"✅ Answered: {today.answered} (mean: {means.answered})",
        _percent_line(levels.answered),
        "",
        f"📵 Abandoned: {today.abandoned} (mean: {means.abandoned})",
        _percent_line(levels.abandoned),
        "",
        f"🔄 Retained in IVR: {today.retained_ivr} (mean: {means.retained_ivr})",
        _percent_line(levels.retained_ivr),
        "",
        DIVIDER,
        f"📈 *Total volume: {total_ratio}% of the mean*",
        f"_Based on {comparison.history.days_with_data} days with data_",
    ]
    return "\n".join(lines)


def format_daily_report(kpis: KPISnapshot, now: datetime) -> str:
    """Plain-text D0 report."""
    total = kpis.total_calls
    answered_pct = round_half_up(kpis.answered * 100 / total) if total > 0 else 0
    abandoned_pct = round_half_up(kpis.abandoned * 100 / total) if total > 0 else 0

    if answered_pct >= 80:
        rate_indicator = "🟢"
    elif answered_pct >= 60:
        rate_indicator = "🟡"
    else:
        rate_indicator = "🔴"

    lines = [
        "📊 *D0 REPORT*",
        DIVIDER,
        "",
        f"📅 *{now.strftime('%A, %d %B %Y')}*",
        f"🕐 Generated at {now.strftime('%H:%M')}",
        "",
        f"📈 Total calls: *{total}*",
        "",
        f"✅ Answered: *{kpis.answered}* ({answered_pct}%)",
        f"📵 Abandoned: *{kpis.abandoned}* ({abandoned_pct}%)",
        "",
        f"{rate_indicator} Answer rate: *{answered_pct}%*",
    ]
    if kpis.peak_hour is not None:
        lines.append("")
        lines.append(f"🕐 Peak hour: *{kpis.peak_hour.hour}* ({kpis.peak_hour.count} calls)")
    lines.extend(["", DIVIDER, "_ReportsDAY_"])
    return "\n".join(lines)


class NotificationDispatcher:
    """Sends reports through a MessagingClient."""

    def __init__(
        self,
        messaging_client: MessagingClient,
        clock: Clock,
        followup_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._messaging = messaging_client
        self._clock = clock
        self._followup_delay = followup_delay_seconds
        self._sleep = sleep

    @property
    def messaging(self) -> MessagingClient:
        return self._messaging

    async def send_report(
        self,
        kpis: KPISnapshot,
        comparison: Optional[DailyComparison] = None,
        destination: Optional[str] = None,
    ) -> DispatchResult:
        """
        Send the daily report, followed by the historical comparison.

        Args:
            kpis: Today's snapshot
            comparison: Historical comparison; the follow-up is only sent
                when it carries classifications
            destination: Override of the provider's default destination

        Returns:
            DispatchResult of the report; the comparison's result is in
            ``followup``
        """
        payload = build_report_payload(kpis, self._clock())
        logger.info(f"Dispatching report: {payload.received} received, {payload.answered} answered")

        result = await self._messaging.send(destination, OutboundMessage(report=payload))
        if not result.success:
            logger.error(f"Report dispatch failed: {result.error}")
            return result

        text = format_historical_message(comparison) if comparison is not None else None
        if text is None:
            return result

        await self._sleep(self._followup_delay)
        followup = await self._messaging.send(destination, OutboundMessage(text=text))
        if followup.success:
            logger.info("Historical comparison sent")
        else:
            logger.warning(f"Historical comparison dispatch failed: {followup.error}")

        return result.model_copy(update={"followup": followup})

    async def send_report_to_all(self, kpis: KPISnapshot) -> DispatchResult:
        payload = build_report_payload(kpis, self._clock())
        logger.info("Dispatching report to every destination")
        return await self._messaging.send_to_all(OutboundMessage(report=payload))

    async def send_text(self, text: str, destination: Optional[str] = None) -> DispatchResult:
        return await self._messaging.send(destination, OutboundMessage(text=text))

    def format_daily_report(self, kpis: KPISnapshot) -> str:
        return format_daily_report(kpis, self._clock())
