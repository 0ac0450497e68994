"""
Enumeration definitions for the ReportsDAY service.

All enums inherit from both `str` and `Enum` so Pydantic models serialize them
as plain strings in API responses and broadcast events.
"""

from enum import Enum


class CallCategory(str, Enum):
    """
    Mutually exclusive outcome of a single inbound call.

    - answered: Reached an agent
    - abandoned: Caller hung up while waiting in a queue
    - retained_ivr: Call ended inside the IVR menu and never reached a queue
    - other: Anything not matched by the rules above
    """
    ANSWERED = "answered"
    ABANDONED = "abandoned"
    RETAINED_IVR = "retained_ivr"
    OTHER = "other"


class KPISource(str, Enum):
    """Which upstream shape a KPI snapshot was derived from."""
    AGGREGATE = "aggregate"
    CALL_LIST = "call_list"
    EMPTY = "empty"


class LevelTier(str, Enum):
    """
    Classification of a metric against its historical mean.

    Ratio buckets (current / mean * 100, rounded):
    - below_normal: < 70
    - normal: 70 - 99
    - high: 100 - 129
    - very_high: >= 130
    - undefined: mean is zero
    """
    BELOW_NORMAL = "below_normal"
    NORMAL = "normal"
    HIGH = "high"
    VERY_HIGH = "very_high"
    UNDEFINED = "undefined"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]

    @property
    def indicator(self) -> str:
        return _TIER_INDICATORS[self]


_TIER_LABELS = {
    LevelTier.BELOW_NORMAL: "below normal",
    LevelTier.NORMAL: "normal",
    LevelTier.HIGH: "high",
    LevelTier.VERY_HIGH: "very high",
    LevelTier.UNDEFINED: "undefined",
}

_TIER_INDICATORS = {
    LevelTier.BELOW_NORMAL: "🔴",
    LevelTier.NORMAL: "🟡",
    LevelTier.HIGH: "🟢",
    LevelTier.VERY_HIGH: "🔥",
    LevelTier.UNDEFINED: "⚪",
}


class EventType(str, Enum):
    """Event types pushed to live dashboard viewers."""
    LOG = "log"
    D0_UPDATE = "d0_update"
    NEW_CALL = "new_call"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_COMPLETE = "execution_complete"
    EXECUTION_ERROR = "execution_error"
    STATUS = "status"
    PONG = "pong"


class LogLevel(str, Enum):
    """Severity of a dashboard log line."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    EVENT = "event"


class TriggerKind(str, Enum):
    """What started a report execution."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class JobKind(str, Enum):
    REPORT = "report"
    HOURLY_REFRESH = "hourly_refresh"


class JobState(str, Enum):
    """
    Lifecycle state of a scheduled job.

    scheduled -> running (an execution is in flight) -> scheduled, or stopped
    once cancelled. Stopping never cancels an execution already in flight.
    """
    SCHEDULED = "scheduled"
    RUNNING = "running"
    STOPPED = "stopped"


class MessagingProvider(str, Enum):
    """Backend used to deliver reports."""
    WHATSAPP = "whatsapp"
    SLACK = "slack"


class ReportPeriod(str, Enum):
    """Part of the day a report was generated in."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
