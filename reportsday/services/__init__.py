"""
ReportsDAY Services Module

Business logic of the report pipeline. Services receive their collaborators
through their constructors (see reportsday.core.runtime) so they can be
tested with fakes.

Services:
- ingestion: Normalization and classification of upstream call records
- aggregator: Daily KPI snapshot from the metrics provider
- history: Rolling baseline and level classification
- cache: Per-day JSON file cache of webhook calls
- dispatcher: Report formatting and delivery
- broadcaster: Event fan-out to live viewers
"""

# =============================================================================
# Ingestion
# =============================================================================

from reportsday.services.ingestion import (
    classify_call,
    normalize_call_record,
    normalize_call_list,
    normalize_webhook_payload,
    parse_count,
    parse_duration,
)

# =============================================================================
# Live Viewers
# =============================================================================

from reportsday.services.broadcaster import EventBroadcaster

# =============================================================================
# KPIs and History
# =============================================================================

from reportsday.services.aggregator import MetricsAggregator, find_peak_hour
from reportsday.services.history import HistoricalAnalyzer, classify_level

# =============================================================================
# Day Cache
# =============================================================================

from reportsday.services.cache import IngestionCache

# =============================================================================
# Dispatch
# =============================================================================

from reportsday.services.dispatcher import (
    NotificationDispatcher,
    build_report_payload,
    format_daily_report,
    format_historical_message,
)


__all__ = [
    # Ingestion
    'classify_call',
    'normalize_call_record',
    'normalize_call_list',
    'normalize_webhook_payload',
    'parse_count',
    'parse_duration',
    # Live viewers
    'EventBroadcaster',
    # KPIs and history
    'MetricsAggregator',
    'find_peak_hour',
    'HistoricalAnalyzer',
    'classify_level',
    # Day cache
    'IngestionCache',
    # Dispatch
    'NotificationDispatcher',
    'build_report_payload',
    'format_daily_report',
    'format_historical_message',
]
