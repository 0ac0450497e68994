"""
Call Ingestion Adapter

This module maps every known upstream call shape into the single internal
CallRecord type and classifies each call exactly once. Everything downstream
(KPI aggregator, day cache, webhook route) works on CallRecord only.

Known upstream shapes:
- pbx: PBX report/webhook rows (call_id, call_date, call_status, call_queue,
  call_time_waiting, call_duration)
- legacy_pt: older Portuguese-keyed rows (atendida, data, fila, tempo_espera,
  duracao)
- generic: plain keys (id, date, timestamp, status, queue, answered,
  wait_time, duration)

Classification precedence (first match wins):
1. Explicit answered flag (true / 1 / "1" / "true")
2. Status contains an answered marker (ANSWERED, ATENDIDA)
3. Status contains an abandoned marker (ABANDONED, ABANDONADA, NO ANSWER)
4. Status contains an IVR marker (URA, IVR) or the queue is empty
5. Otherwise: other
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from reportsday.models.enums import CallCategory
from reportsday.models.schemas import CallRecord


logger = logging.getLogger(__name__)


# =============================================================================
# Field Aliases and Status Markers
# =============================================================================

ID_KEYS: Sequence[str] = ("call_id", "callId", "id", "uniqueid")
TIMESTAMP_KEYS: Sequence[str] = ("call_date", "date", "data", "timestamp", "start_time")
QUEUE_KEYS: Sequence[str] = ("call_queue", "queue", "fila")
STATUS_KEYS: Sequence[str] = ("call_status", "status")
ANSWERED_KEYS: Sequence[str] = ("answered", "atendida")
WAIT_KEYS: Sequence[str] = ("call_time_waiting", "wait_time", "tempo_espera")
DURATION_KEYS: Sequence[str] = ("call_duration", "duration", "duracao")

ANSWERED_MARKERS: Sequence[str] = ("ANSWERED", "ATENDIDA")
ABANDONED_MARKERS: Sequence[str] = ("ABANDONED", "ABANDONADA", "NO ANSWER")
IVR_MARKERS: Sequence[str] = ("URA", "IVR")

_TRUE_FLAGS = {"1", "true", "yes", "sim"}


# =============================================================================
# Lenient Value Parsing
# =============================================================================


def _first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_count(value: Any) -> int:
    """
    Parse a provider counter into a non-negative int.

    Accepts ints, floats and numeric strings ("12", "12.0"); anything else,
    including None, counts as 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        if isinstance(value, (int, float)):
            return max(int(value), 0)
        return max(int(float(str(value).strip())), 0)
    except (ValueError, OverflowError):
        return 0


def parse_duration(value: Any) -> int:
    """
    Parse a duration into whole seconds.

    "HH:MM:SS" strings are converted (e.g. "00:01:06" -> 66); plain numbers
    are taken as seconds. Malformed values yield 0.
    """
    if value is None:
        return 0
    if isinstance(value, str) and ":" in value:
        parts = value.strip().split(":")
        if len(parts) != 3:
            return 0
        try:
            hours, minutes, seconds = (int(p) for p in parts)
        except ValueError:
            return 0
        return max(hours * 3600 + minutes * 60 + seconds, 0)
    return parse_count(value)


def parse_flag(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_FLAGS


def parse_timestamp(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or epoch number into an aware datetime.

    Naive values are interpreted in ``tz``; epoch values above 10^11 are
    treated as milliseconds. Returns None when the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz)
        except (ValueError, OverflowError, OSError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    try:
        return parsed.astimezone(tz)
    except (ValueError, OverflowError):
        return None


# =============================================================================
# Classification
# =============================================================================


def classify_call(
    status: str,
    queue: str,
    answered_flag: Optional[bool] = None
) -> CallCategory:
    """
    Classify a call into exactly one CallCategory.

    Args:
        status: Provider textual status (case-insensitive)
        queue: Queue name; empty means the call never left the IVR
        answered_flag: Explicit answered flag, when present

    Returns:
        CallCategory for the call
    """
    if answered_flag:
        return CallCategory.ANSWERED

    normalized = (status or "").upper()

    if any(marker in normalized for marker in ANSWERED_MARKERS):
        return CallCategory.ANSWERED

    if any(marker in normalized for marker in ABANDONED_MARKERS):
        return CallCategory.ABANDONED

    if any(marker in normalized for marker in IVR_MARKERS) or not (queue or "").strip():
        return CallCategory.RETAINED_IVR

    return CallCategory.OTHER


# =============================================================================
# Normalization
# =============================================================================


def _detect_shape(raw: Mapping[str, Any]) -> str:
    if any(key in raw for key in ("call_status", "call_date", "call_queue")):
        return "pbx"
    if any(key in raw for key in ("atendida", "fila", "tempo_espera", "data")):
        return "legacy_pt"
    return "generic"


def normalize_call_record(raw: Mapping[str, Any], tz: tzinfo) -> CallRecord:
    """
    Map one upstream call dict into a classified CallRecord.

    Args:
        raw: Call as received from the metrics API or a webhook
        tz: Zone used for naive timestamps

    Returns:
        CallRecord with its category assigned

    Raises:
        TypeError: If ``raw`` is not a mapping
    """
    if not isinstance(raw, Mapping):
        raise TypeError(f"Call record must be an object, got {type(raw).__name__}")

    call_id = _first_present(raw, ID_KEYS)
    queue = str(_first_present(raw, QUEUE_KEYS) or "")
    status = str(_first_present(raw, STATUS_KEYS) or "")
    answered_flag = parse_flag(_first_present(raw, ANSWERED_KEYS))

    return CallRecord(
        call_id=str(call_id) if call_id is not None else None,
        timestamp=parse_timestamp(_first_present(raw, TIMESTAMP_KEYS), tz),
        queue=queue,
        status=status,
        answered_flag=answered_flag,
        wait_seconds=parse_duration(_first_present(raw, WAIT_KEYS)),
        duration_seconds=parse_duration(_first_present(raw, DURATION_KEYS)),
        category=classify_call(status, queue, answered_flag),
        raw_source=_detect_shape(raw),
    )


def normalize_call_list(rows: Iterable[Any], tz: tzinfo) -> List[CallRecord]:
    """
    Normalize a provider call list, skipping rows that are not objects.

    Skipped rows are logged; they never abort the batch.
    """
    records: List[CallRecord] = []
    skipped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        records.append(normalize_call_record(row, tz))
    if skipped:
        logger.warning(f"Skipped {skipped} call rows that were not JSON objects")
    return records


def normalize_webhook_payload(payload: Any, tz: tzinfo) -> List[CallRecord]:
    """
    Normalize an inbound webhook body.

    Accepts a single call object, a list of call objects, or an envelope
    of the form {"calls": [...]}.

    Raises:
        ValueError: If the payload carries no call objects
    """
    if isinstance(payload, Mapping) and isinstance(payload.get("calls"), list):
        rows = payload["calls"]
    elif isinstance(payload, Mapping):
        rows = [payload]
    elif isinstance(payload, list):
        rows = payload
    else:
        raise ValueError("Webhook payload must be a call object or a list of calls")

    records = normalize_call_list(rows, tz)
    if not records:
        raise ValueError("Webhook payload contains no call objects")
    return records
