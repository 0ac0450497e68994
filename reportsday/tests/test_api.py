"""
Test Module for the HTTP and WebSocket API.

Uses FastAPI's TestClient against an application built around a Runtime
whose clients are fakes (see conftest.py). The scheduler jobs are not
started, so nothing fires on its own.

Tests cover:
- Health, service info and status
- Report endpoints (D0, analysis, history)
- Executions: manual trigger, history, next run, schedule updates, jobs
- PBX webhook: token checks, payload shapes, day cache writes
- WebSocket: greeting, ping/pong, status, reconnect requests, live events
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from reportsday.core.runtime import Runtime, build_runtime
from reportsday.main import create_app
from reportsday.tests.conftest import FakeMetricsClient, RecordingMessenger

pytestmark = pytest.mark.api


TODAY = date(2026, 10, 16)
AUTH = {"token": "hook-secret"}


@pytest.fixture
def client(runtime: Runtime):
    app = create_app(runtime=runtime, start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# Service Info and Status
# =============================================================================

class TestServiceInfo:

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_root(self, client: TestClient) -> None:
        data = client.get("/").json()

        assert data["name"] == "ReportsDAY API"
        assert data["websocket"] == "/ws"

    def test_status(self, client: TestClient) -> None:
        response = client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["messaging"] == {"provider": "whatsapp", "status": "connected", "configured": True}
        assert data["cache"]["connected"] is True
        assert data["cache"]["has_cache"] is False
        assert data["cache"]["ttl"] is None
        assert data["metrics"]["configured"] is True
        assert data["next_run"].startswith("2026-10-16T18:00:00")
        assert data["scheduled_times"] == ["09:00", "18:00"]
        assert data["viewers"] == 0

    def test_not_started_is_503(self, settings) -> None:
        # Without entering the context manager the lifespan never runs
        app = create_app(settings=settings)
        response = TestClient(app).get("/api/status")

        assert response.status_code == 503


# =============================================================================
# Reports
# =============================================================================

class TestReports:

    def test_d0(self, client: TestClient) -> None:
        data = client.get("/api/report/d0").json()

        assert data["total_calls"] == 140
        assert data["answered"] == 120
        assert data["source"] == "aggregate"

    def test_analysis(self, client: TestClient) -> None:
        data = client.get("/api/report/analysis", params={"days": 2}).json()

        assert data["error"] is None
        assert data["history"]["days_with_data"] == 2
        assert data["classifications"]["total"]["tier"] == "high"
        assert data["summary"] == "Day 🟢 high - 100% of expected"

    def test_history(self, client: TestClient) -> None:
        data = client.get("/api/report/history", params={"days": 3}).json()

        assert data["requested_days"] == 3
        assert data["means"]["answered"] == 120

    def test_history_without_data_is_null(self, settings, clock) -> None:
        runtime = build_runtime(
            settings,
            clock=clock,
            metrics_client=FakeMetricsClient(response=None),
            messaging_client=RecordingMessenger(),
        )
        with TestClient(create_app(runtime=runtime, start_scheduler=False)) as client:
            response = client.get("/api/report/history", params={"days": 2})

        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.parametrize("days", [0, 61])
    def test_history_window_validated(self, client: TestClient, days: int) -> None:
        assert client.get("/api/report/history", params={"days": days}).status_code == 422


# =============================================================================
# Executions and Schedule
# =============================================================================

class TestExecutions:

    def test_trigger_and_deduplicate(self, client: TestClient) -> None:
        first = client.post("/api/trigger").json()
        second = client.post("/api/trigger").json()

        assert first == {"success": True, "message": "Report triggered", "deduplicated": False}
        assert second["deduplicated"] is True

    def test_history_after_execution(self, client: TestClient, runtime: Runtime) -> None:
        client.portal.call(runtime.scheduler.execute_report)

        data = client.get("/api/history").json()

        assert len(data["history"]) == 1
        assert data["history"][0]["success"] is True
        assert data["history"][0]["kpis"]["total_calls"] == 140

    def test_next_run(self, client: TestClient) -> None:
        data = client.get("/api/next-run").json()

        assert data["formatted"] == "16/10/2026 18:00"

    def test_update_schedule(self, client: TestClient) -> None:
        response = client.put("/api/schedule", json={"times": ["19:00", "8:30"]})

        assert response.status_code == 200
        data = response.json()
        assert data["times"] == ["08:30", "19:00"]
        assert data["next_run"].startswith("2026-10-16T19:00:00")

    def test_update_schedule_invalid(self, client: TestClient) -> None:
        response = client.put("/api/schedule", json={"times": ["25:00"]})

        assert response.status_code == 400
        assert client.get("/api/next-run").json()["formatted"] == "16/10/2026 18:00"

    def test_update_schedule_empty(self, client: TestClient) -> None:
        assert client.put("/api/schedule", json={"times": []}).status_code == 422

    def test_jobs_empty_when_not_started(self, client: TestClient) -> None:
        assert client.get("/api/jobs").json() == []


# =============================================================================
# PBX Webhook
# =============================================================================

class TestWebhook:

    def test_single_call(self, client: TestClient, runtime: Runtime) -> None:
        # Arrange
        call = {"call_id": "991", "call_status": "ANSWERED", "call_queue": "support"}

        # Act
        response = client.post("/webhook/pbx", json=call, headers=AUTH)

        # Assert
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "received": 1,
            "stored": 1,
            "calls": [{"call_id": "991", "category": "answered"}],
        }
        assert runtime.cache.calls_path(TODAY).exists()

    def test_put_with_envelope_and_bearer(self, client: TestClient) -> None:
        body = {"calls": [
            {"call_id": "1", "call_status": "ABANDONED", "call_queue": "sales"},
            {"call_id": "2", "call_status": "", "call_queue": ""},
        ]}

        response = client.put("/webhook/pbx", json=body, headers={"Authorization": "Bearer hook-secret"})

        assert response.status_code == 200
        categories = [c["category"] for c in response.json()["calls"]]
        assert categories == ["abandoned", "retained_ivr"]

    def test_cached_calls_visible_in_status(self, client: TestClient) -> None:
        client.post("/webhook/pbx", json=[{"call_id": "1"}, {"call_id": "2"}], headers=AUTH)

        cache = client.get("/api/status").json()["cache"]

        assert cache["has_cache"] is True
        assert cache["call_count"] == 2
        assert cache["ttl"] == 90000

    @pytest.mark.parametrize("headers", [{}, {"token": "wrong"}, {"Authorization": "Bearer wrong"}])
    def test_invalid_token(self, client: TestClient, headers) -> None:
        response = client.post("/webhook/pbx", json={"call_id": "1"}, headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_metrics_token_accepted_without_webhook_token(self, settings, clock, fake_metrics) -> None:
        runtime = build_runtime(
            settings.model_copy(update={"webhook_token": None}),
            clock=clock,
            metrics_client=fake_metrics,
            messaging_client=RecordingMessenger(),
        )
        with TestClient(create_app(runtime=runtime, start_scheduler=False)) as client:
            response = client.post("/webhook/pbx", json={"call_id": "1"}, headers={"token": "metrics-token"})

        assert response.status_code == 200

    def test_out_of_range_call_date_is_stored_without_time(self, client: TestClient, runtime: Runtime) -> None:
        body = {"call_id": "55", "call_status": "ANSWERED", "call_queue": "q", "call_date": 10**20}

        response = client.post("/webhook/pbx", json=body, headers=AUTH)

        assert response.status_code == 200
        stored = client.portal.call(runtime.cache.list_calls)
        assert stored[0]["call_id"] == "55"
        assert stored[0]["timestamp"] is None

    @pytest.mark.parametrize("body", [[], "text", ["not-an-object"]])
    def test_payload_without_calls(self, client: TestClient, body) -> None:
        response = client.post("/webhook/pbx", json=body, headers=AUTH)

        assert response.status_code == 400


# =============================================================================
# WebSocket
# =============================================================================

class TestWebSocket:

    def test_greeting_and_ping(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            greeting = ws.receive_json()
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert greeting["type"] == "log"
        assert greeting["payload"] == {"message": "Connected to the ReportsDAY server", "level": "success"}
        assert pong["type"] == "pong"

    def test_non_json_message_ignored(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            ws.send_json({"type": "ping"})

            assert ws.receive_json()["type"] == "pong"

    def test_get_status(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "get_status"})
            status = ws.receive_json()

        assert status["type"] == "status"
        assert status["payload"]["viewers"] == 1
        assert status["payload"]["messaging"]["status"] == "connected"

    def test_reconnect_request_is_broadcast(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "reconnect_messaging"})
            event = ws.receive_json()

        assert event["type"] == "log"
        assert event["payload"]["message"] == "Messaging reconnect requested..."

    def test_webhook_call_pushed_to_viewer(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            client.post("/webhook/pbx", json={"call_id": "7", "call_status": "ABANDONED", "call_queue": "q"}, headers=AUTH)
            event = ws.receive_json()

        assert event["type"] == "new_call"
        assert event["payload"]["call_id"] == "7"
        assert event["payload"]["category"] == "abandoned"

    def test_viewer_removed_on_disconnect(self, client: TestClient, runtime: Runtime) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

        assert client.get("/api/status").json()["viewers"] == 0
