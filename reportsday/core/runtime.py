"""
Runtime container for the ReportsDAY service.

Builds every component from Settings and owns their lifecycle. The FastAPI
lifespan creates one Runtime, stores it on ``app.state.runtime`` and calls
startup()/shutdown(); route handlers reach components through
reportsday.core.dependencies.

Startup order:  day cache -> scheduler
Shutdown order: scheduler (drain in-flight runs) -> viewers -> cache -> HTTP clients
"""

import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional

from reportsday.clients.messaging import MessagingClient, build_messaging_client
from reportsday.clients.metrics_client import MetricsClient
from reportsday.core.config import Settings
from reportsday.core.timeutils import Clock, get_timezone, make_clock
from reportsday.jobs.scheduler import ReportScheduler
from reportsday.services.aggregator import MetricsAggregator
from reportsday.services.broadcaster import EventBroadcaster
from reportsday.services.cache import IngestionCache
from reportsday.services.dispatcher import NotificationDispatcher
from reportsday.services.history import HistoricalAnalyzer


logger = logging.getLogger(__name__)


SHUTDOWN_DRAIN_SECONDS = 30.0


@dataclass
class Runtime:
    settings: Settings
    tz: tzinfo
    clock: Clock
    metrics_client: MetricsClient
    messaging_client: MessagingClient
    broadcaster: EventBroadcaster
    cache: IngestionCache
    aggregator: MetricsAggregator
    analyzer: HistoricalAnalyzer
    dispatcher: NotificationDispatcher
    scheduler: ReportScheduler

    async def startup(self, start_scheduler: bool = True) -> None:
        """
        Prepare the day cache and start the scheduler.

        Raises:
            OSError: If the cache directory cannot be created
        """
        await self.cache.connect()
        if not self.metrics_client.is_configured:
            logger.warning("Metrics API credentials missing; reports will contain zeros")
        if not self.messaging_client.is_configured:
            logger.warning(f"Messaging provider {self.messaging_client.provider.value} is not configured")
        if start_scheduler:
            self.scheduler.start()

    async def shutdown(self, drain_timeout: float = SHUTDOWN_DRAIN_SECONDS) -> None:
        await self.scheduler.stop_all(drain_timeout=drain_timeout)
        await self.broadcaster.close()
        await self.cache.disconnect()
        await self.metrics_client.aclose()
        await self.messaging_client.aclose()
        logger.info("Runtime stopped")


def build_runtime(
    settings: Settings,
    clock: Optional[Clock] = None,
    metrics_client: Optional[MetricsClient] = None,
    messaging_client: Optional[MessagingClient] = None,
) -> Runtime:
    """Wire every component from ``settings``; clients can be injected for tests."""
    tz = get_timezone(settings.timezone)
    clock = clock or make_clock(tz)

    metrics_client = metrics_client or MetricsClient.from_settings(settings)
    messaging_client = messaging_client or build_messaging_client(settings)
    broadcaster = EventBroadcaster(queue_size=settings.viewer_queue_size)
    cache = IngestionCache(settings.cache_dir, ttl_seconds=settings.cache_ttl_seconds, clock=clock)

    aggregator = MetricsAggregator(metrics_client, tz=tz, broadcaster=broadcaster, clock=clock)
    analyzer = HistoricalAnalyzer(
        aggregator,
        broadcaster=broadcaster,
        pause_seconds=settings.history_request_pause_seconds,
    )
    dispatcher = NotificationDispatcher(
        messaging_client,
        clock=clock,
        followup_delay_seconds=settings.followup_delay_seconds,
    )
    scheduler = ReportScheduler(
        aggregator,
        analyzer,
        dispatcher,
        broadcaster,
        times=settings.schedule_times,
        clock=clock,
        history_days=settings.history_days,
        history_limit=settings.execution_history_limit,
    )

    return Runtime(
        settings=settings,
        tz=tz,
        clock=clock,
        metrics_client=metrics_client,
        messaging_client=messaging_client,
        broadcaster=broadcaster,
        cache=cache,
        aggregator=aggregator,
        analyzer=analyzer,
        dispatcher=dispatcher,
        scheduler=scheduler,
    )
