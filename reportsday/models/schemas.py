"""
Pydantic models for the ReportsDAY service.

This module provides type-safe data validation and serialization for the
values flowing through the report pipeline:

- Call ingestion: CallRecord (normalized inbound call)
- KPI computation: PeakHour, KPISnapshot
- Historical baseline: HistoricalRecord, HistoricalMeans, HistoricalSummary
- Comparison: LevelClassification, MetricClassifications, DailyComparison
- Scheduling: ExecutionRecord, TriggerAck, JobInfo
- Day cache: CacheMetadata
- Messaging: ReportPayload, QueuePeak, OutboundMessage, DispatchResult, MessagingStatus
- Live viewers: BroadcastEvent

Value objects handed from one stage of the pipeline to the next are frozen;
a KPI snapshot is created fresh on every aggregation and never mutated.

All models use Pydantic v2 syntax.
"""

from datetime import datetime, date as DateType
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reportsday.models.enums import (
    CallCategory,
    EventType,
    JobKind,
    JobState,
    KPISource,
    LevelTier,
    MessagingProvider,
    ReportPeriod,
    TriggerKind,
)


# =============================================================================
# Call Ingestion
# =============================================================================


class CallRecord(BaseModel):
    """
    A single inbound call, normalized from any upstream shape.

    Produced by reportsday.services.ingestion.normalize_call_record. The
    category is assigned once during normalization; downstream code never
    re-classifies.
    """
    model_config = ConfigDict(frozen=True)

    call_id: Optional[str] = Field(default=None, description="Provider call identifier")
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Call start time (timezone-aware)"
    )
    queue: str = Field(default="", description="Queue the call was routed to")
    status: str = Field(default="", description="Provider textual status")
    answered_flag: Optional[bool] = Field(
        default=None,
        description="Explicit answered flag when the provider sends one"
    )
    wait_seconds: int = Field(default=0, ge=0, description="Time waiting in queue")
    duration_seconds: int = Field(default=0, ge=0, description="Call duration")
    category: CallCategory = Field(..., description="Classified call outcome")
    raw_source: str = Field(default="unknown", description="Upstream shape name")


# =============================================================================
# KPI Snapshot
# =============================================================================


class PeakHour(BaseModel):
    """Busiest hour of the day in a call-list snapshot."""
    model_config = ConfigDict(frozen=True)

    hour: str = Field(..., description="Hour label, e.g. '14:00'")
    count: int = Field(..., ge=0, description="Calls received in that hour")


class KPISnapshot(BaseModel):
    """
    Normalized daily call-center KPIs.

    Invariants:
        - call_list snapshots: answered + abandoned + retained_ivr + other == total_calls
        - aggregate snapshots: total_calls == answered + abandoned + retained_ivr
          and other == 0 (the provider does not report an "other" bucket)
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "total_calls": 412,
                "answered": 371,
                "abandoned": 29,
                "retained_ivr": 12,
                "other": 0,
                "peak_hour": None,
                "average_wait_seconds": 6,
                "generated_at": "2026-10-18T18:00:02-03:00",
                "source": "aggregate",
            }
        }
    )

    total_calls: int = Field(default=0, ge=0)
    answered: int = Field(default=0, ge=0)
    abandoned: int = Field(default=0, ge=0)
    retained_ivr: int = Field(default=0, ge=0, description="Calls that ended inside the IVR")
    other: int = Field(default=0, ge=0)
    peak_hour: Optional[PeakHour] = None
    average_wait_seconds: float = Field(default=0, ge=0)
    generated_at: datetime
    source: KPISource = KPISource.EMPTY

    # Extras reported by the aggregate endpoint
    service_level: Optional[str] = Field(default=None, description="Provider SLA string, e.g. '92%'")
    average_call_duration: Optional[str] = Field(default=None, description="'HH:MM:SS' average duration")

    error: Optional[str] = Field(
        default=None,
        description="Set when the snapshot was zeroed because of an internal failure"
    )

    @model_validator(mode="after")
    def _check_category_sum(self) -> "KPISnapshot":
        if self.source == KPISource.CALL_LIST:
            classified = self.answered + self.abandoned + self.retained_ivr + self.other
            if classified != self.total_calls:
                raise ValueError(
                    f"classified calls ({classified}) do not add up to total_calls ({self.total_calls})"
                )
        return self

    @classmethod
    def empty(cls, generated_at: datetime, error: Optional[str] = None) -> "KPISnapshot":
        """All-zero snapshot used whenever the provider has no data."""
        return cls(generated_at=generated_at, source=KPISource.EMPTY, error=error)


# =============================================================================
# Historical Baseline
# =============================================================================


class HistoricalRecord(BaseModel):
    """KPI counts for one prior day."""
    model_config = ConfigDict(frozen=True)

    date: DateType
    answered: int = Field(default=0, ge=0)
    abandoned: int = Field(default=0, ge=0)
    retained_ivr: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)


class HistoricalMeans(BaseModel):
    """Per-metric means over the days that actually produced data."""
    model_config = ConfigDict(frozen=True)

    answered: int = 0
    abandoned: int = 0
    retained_ivr: int = 0
    total: int = 0


class HistoricalSummary(BaseModel):
    """Rolling baseline built from the last N days."""
    requested_days: int = Field(..., ge=1)
    days_with_data: int = Field(..., ge=1, description="Divisor used for the means")
    records: List[HistoricalRecord] = Field(default_factory=list)
    means: HistoricalMeans
    generated_at: datetime


class LevelClassification(BaseModel):
    """Current value of a metric compared with its baseline mean."""
    model_config = ConfigDict(frozen=True)

    tier: LevelTier
    label: str
    indicator: str
    ratio: Optional[int] = Field(
        default=None,
        description="current / mean * 100, rounded; None when mean is 0"
    )
    current: int = 0
    mean: int = 0
    description: Optional[str] = None


class MetricClassifications(BaseModel):
    """Level classification of each tracked metric."""
    answered: LevelClassification
    abandoned: LevelClassification
    retained_ivr: LevelClassification
    total: LevelClassification


class DailyComparison(BaseModel):
    """
    Today's KPIs compared with the rolling baseline.

    When no historical day produced data, history/classifications/summary are
    None and error explains why; this is a soft failure.
    """
    today: KPISnapshot
    history: Optional[HistoricalSummary] = None
    classifications: Optional[MetricClassifications] = None
    summary: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Scheduling
# =============================================================================


class ExecutionRecord(BaseModel):
    """Audit entry for one run of the report pipeline."""
    timestamp: datetime
    trigger: TriggerKind = TriggerKind.SCHEDULED
    success: bool
    kpis: Optional[KPISnapshot] = None
    duration_ms: int = Field(default=0, ge=0)
    dispatch_id: Optional[str] = None
    error: Optional[str] = None


class TriggerAck(BaseModel):
    """Immediate answer to a manual trigger; the run itself is fire-and-forget."""
    success: bool = True
    message: str
    deduplicated: bool = False


class JobInfo(BaseModel):
    name: str
    kind: JobKind
    state: JobState
    next_run: Optional[datetime] = None
    in_flight: int = 0


# =============================================================================
# Day Cache
# =============================================================================


class CacheMetadata(BaseModel):
    """TTL metadata stored alongside a day's call list."""
    created_at: datetime
    expires_at: datetime
    ttl_seconds: int = Field(..., ge=0)


# =============================================================================
# Messaging
# =============================================================================


class QueuePeak(BaseModel):
    """Busiest moment of the day as shown in the report card."""
    moment: str = "00:00"
    people: int = 0


class ReportPayload(BaseModel):
    """Structured daily report handed to the messaging provider."""
    received: int = Field(default=0, ge=0)
    answered: int = Field(default=0, ge=0)
    abandoned: int = Field(default=0, ge=0)
    period: ReportPeriod
    date: str = Field(..., description="Local date as DD/MM/YYYY")
    queues: List[QueuePeak] = Field(default_factory=list)


class OutboundMessage(BaseModel):
    """Either a structured report or a plain text body."""
    report: Optional[ReportPayload] = None
    text: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_body(self) -> "OutboundMessage":
        if (self.report is None) == (self.text is None):
            raise ValueError("OutboundMessage needs exactly one of 'report' or 'text'")
        return self


class DispatchResult(BaseModel):
    """Transport-level outcome of a send; no delivery confirmation."""
    success: bool
    dispatch_id: Optional[str] = None
    error: Optional[str] = None
    destination: Optional[str] = None
    data: Optional[Any] = None
    followup: Optional["DispatchResult"] = None


class MessagingStatus(BaseModel):
    provider: MessagingProvider
    configured: bool
    connected: bool
    status: str
    detail: Optional[str] = None


# =============================================================================
# Live Viewers
# =============================================================================


class BroadcastEvent(BaseModel):
    """Event fanned out to every connected dashboard viewer."""
    type: EventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now().astimezone())
