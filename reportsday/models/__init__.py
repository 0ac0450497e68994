"""
Package initialization file for ReportsDAY models.

Re-exports all enumerations and Pydantic schemas so other modules can import
them from reportsday.models directly:

    from reportsday.models import KPISnapshot, CallCategory, LevelTier
"""

# =============================================================================
# Enums
# =============================================================================

from reportsday.models.enums import (
    CallCategory,
    KPISource,
    LevelTier,
    EventType,
    LogLevel,
    TriggerKind,
    JobKind,
    JobState,
    MessagingProvider,
    ReportPeriod,
)


# =============================================================================
# Schemas
# =============================================================================

from reportsday.models.schemas import (
    # Call ingestion
    CallRecord,
    # KPI snapshot
    PeakHour,
    KPISnapshot,
    # Historical baseline
    HistoricalRecord,
    HistoricalMeans,
    HistoricalSummary,
    LevelClassification,
    MetricClassifications,
    DailyComparison,
    # Scheduling
    ExecutionRecord,
    TriggerAck,
    JobInfo,
    # Day cache
    CacheMetadata,
    # Messaging
    QueuePeak,
    ReportPayload,
    OutboundMessage,
    DispatchResult,
    MessagingStatus,
    # Live viewers
    BroadcastEvent,
)


__all__ = [
    # Enums
    'CallCategory',
    'KPISource',
    'LevelTier',
    'EventType',
    'LogLevel',
    'TriggerKind',
    'JobKind',
    'JobState',
    'MessagingProvider',
    'ReportPeriod',
    # Schemas
    'CallRecord',
    'PeakHour',
    'KPISnapshot',
    'HistoricalRecord',
    'HistoricalMeans',
    'HistoricalSummary',
    'LevelClassification',
    'MetricClassifications',
    'DailyComparison',
    'ExecutionRecord',
    'TriggerAck',
    'JobInfo',
    'CacheMetadata',
    'QueuePeak',
    'ReportPayload',
    'OutboundMessage',
    'DispatchResult',
    'MessagingStatus',
    'BroadcastEvent',
]
