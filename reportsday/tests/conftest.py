"""
Pytest Configuration and Shared Fixtures for ReportsDAY Tests.

This module provides fixtures and test doubles shared by the suite:
- A controllable clock pinned to a known local instant (America/Sao_Paulo)
- FakeMetricsClient: scripted metrics provider answers, records every window
- RecordingMessenger: MessagingClient that records outbound messages
- RecordingViewer: WebSocket stand-in for the event broadcaster
- Instant sleep for code paths that pause between requests
- Settings and a fully wired Runtime backed by the fakes

Async tests run under pytest-asyncio in auto mode (see pyproject.toml).
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from reportsday.clients.messaging import MessagingClient
from reportsday.core.config import Settings
from reportsday.core.runtime import Runtime, build_runtime
from reportsday.core.timeutils import get_timezone
from reportsday.models.enums import MessagingProvider
from reportsday.models.schemas import DispatchResult, MessagingStatus, OutboundMessage
from reportsday.services.broadcaster import EventBroadcaster


TIMEZONE = "America/Sao_Paulo"


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        'markers',
        'api: marks tests that exercise the FastAPI application'
    )


# ============================================================
# CLOCK
# ============================================================

class FakeClock:
    """Clock returning a settable aware datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def tz():
    return get_timezone(TIMEZONE)


@pytest.fixture
def fixed_now(tz) -> datetime:
    """Friday 2026-10-16 10:30 local time."""
    return datetime(2026, 10, 16, 10, 30, tzinfo=tz)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    return FakeClock(fixed_now)


# ============================================================
# SLEEP
# ============================================================

class RecordingSleep:
    """Awaitable sleep replacement that returns immediately."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


# ============================================================
# METRICS PROVIDER
# ============================================================

class FakeMetricsClient:
    """
    Stand-in for MetricsClient.

    ``handler`` receives (start, end) and returns the provider answer; by
    default every request answers ``response``. Each call is recorded as
    (start, end, quiet_statuses).
    """

    def __init__(
        self,
        response: Any = None,
        handler: Optional[Callable[[datetime, datetime], Any]] = None,
        configured: bool = True,
    ):
        self.response = response
        self.handler = handler
        self.configured = configured
        self.calls: List[Tuple[datetime, datetime, Tuple[int, ...]]] = []
        self.closed = False

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def fetch_aggregate(self, start, end, filters=None, quiet_statuses=()):
        self.calls.append((start, end, tuple(quiet_statuses)))
        if self.handler is not None:
            return self.handler(start, end)
        return self.response

    async def test_connection(self) -> bool:
        return self.configured

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def aggregate_response() -> Dict[str, Any]:
    """Aggregate answer of the report_01 endpoint."""
    return {
        "totalCallAttendedReceptive": "120",
        "totalCallAbandonedQueue": 15,
        "totalCallAbandonedURA": "5",
        "timeMediumWaitingAttendance": "00:01:06",
        "sla_attendance": "92%",
        "timeMediumDurationCall": "00:03:10",
    }


@pytest.fixture
def fake_metrics(aggregate_response: Dict[str, Any]) -> FakeMetricsClient:
    return FakeMetricsClient(response=aggregate_response)


# ============================================================
# MESSAGING
# ============================================================

class RecordingMessenger(MessagingClient):
    """MessagingClient that records messages and returns scripted results."""

    provider = MessagingProvider.WHATSAPP

    def __init__(self, results: Optional[List[DispatchResult]] = None):
        self.sent: List[Tuple[Optional[str], OutboundMessage]] = []
        self.broadcasts: List[OutboundMessage] = []
        self._results = list(results or [])
        self.closed = False

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def default_destination(self) -> Optional[str]:
        return "5511999999999"

    def _next_result(self, destination: Optional[str]) -> DispatchResult:
        if self._results:
            return self._results.pop(0)
        return DispatchResult(success=True, dispatch_id=f"msg-{len(self.sent)}", destination=destination)

    async def send(self, destination, message):
        self.sent.append((destination, message))
        return self._next_result(destination)

    async def send_to_all(self, message):
        self.broadcasts.append(message)
        return self._next_result(None)

    async def status(self) -> MessagingStatus:
        return MessagingStatus(provider=self.provider, configured=True, connected=True, status="connected")

    async def list_destinations(self) -> List[Any]:
        return [self.default_destination]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


# ============================================================
# LIVE VIEWERS
# ============================================================

class RecordingViewer:
    """WebSocket stand-in; optionally fails on the n-th send."""

    def __init__(self, fail_after: Optional[int] = None):
        self.received: List[Dict[str, Any]] = []
        self.fail_after = fail_after
        self.close_code: Optional[int] = None

    async def send_json(self, data: Any) -> None:
        if self.fail_after is not None and len(self.received) >= self.fail_after:
            raise RuntimeError("connection closed")
        self.received.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code

    def types(self) -> List[str]:
        return [event["type"] for event in self.received]


async def flush_events(rounds: int = 5) -> None:
    """Let viewer sender tasks drain their queues."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
async def broadcaster():
    instance = EventBroadcaster(queue_size=100)
    yield instance
    await instance.close()


# ============================================================
# SETTINGS AND RUNTIME
# ============================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        metrics_api_token="metrics-token",
        webhook_token="hook-secret",
        whatsapp_api_url="http://gateway.test",
        whatsapp_destination="5511999999999",
        report_times="09:00,18:00",
        timezone=TIMEZONE,
        history_days=3,
        history_request_pause_seconds=0,
        followup_delay_seconds=0,
        cache_dir=str(tmp_path / "DB.Reports"),
    )


@pytest.fixture
def runtime(settings: Settings, clock: FakeClock, fake_metrics: FakeMetricsClient, messenger: RecordingMessenger) -> Runtime:
    return build_runtime(
        settings,
        clock=clock,
        metrics_client=fake_metrics,
        messaging_client=messenger,
    )
