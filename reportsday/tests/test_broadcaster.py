"""
Test Module for the Event Broadcaster.

Tests cover:
- Publish order preserved per viewer
- Failing and slow viewers pruned and closed without affecting the others
- Targeted sends, disconnects and close
"""

from datetime import datetime

from reportsday.models.enums import CallCategory, EventType, KPISource, LogLevel
from reportsday.models.schemas import BroadcastEvent, CallRecord, KPISnapshot
from reportsday.services.broadcaster import PRUNED_CLOSE_CODE, EventBroadcaster
from reportsday.tests.conftest import RecordingViewer, flush_events


class TestPublish:

    async def test_no_viewers_is_noop(self, broadcaster: EventBroadcaster) -> None:
        broadcaster.log("nobody listening")

        assert broadcaster.viewer_count == 0

    async def test_order_preserved_per_viewer(self, broadcaster: EventBroadcaster) -> None:
        # Arrange
        first, second = RecordingViewer(), RecordingViewer()
        await broadcaster.connect(first)
        await broadcaster.connect(second)

        # Act
        for i in range(10):
            broadcaster.log(f"line {i}")
        await flush_events()

        # Assert
        expected = [f"line {i}" for i in range(10)]
        assert [e["payload"]["message"] for e in first.received] == expected
        assert [e["payload"]["message"] for e in second.received] == expected

    async def test_event_payloads(self, broadcaster: EventBroadcaster, fixed_now: datetime) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)

        broadcaster.log("done", LogLevel.SUCCESS)
        broadcaster.kpi_update(KPISnapshot(total_calls=3, answered=3, generated_at=fixed_now, source=KPISource.AGGREGATE))
        broadcaster.new_call(CallRecord(call_id="9", category=CallCategory.ABANDONED))
        await flush_events()

        assert viewer.types() == [EventType.LOG.value, EventType.D0_UPDATE.value, EventType.NEW_CALL.value]
        assert viewer.received[0]["payload"] == {"message": "done", "level": "success"}
        assert viewer.received[1]["payload"]["total_calls"] == 3
        assert viewer.received[2]["payload"]["category"] == "abandoned"
        assert "timestamp" in viewer.received[0]

    async def test_send_to_single_viewer(self, broadcaster: EventBroadcaster) -> None:
        target, bystander = RecordingViewer(), RecordingViewer()
        await broadcaster.connect(target)
        await broadcaster.connect(bystander)

        broadcaster.send_to(target, BroadcastEvent(type=EventType.PONG))
        await flush_events()

        assert target.types() == [EventType.PONG.value]
        assert bystander.received == []


class TestPruning:

    async def test_failing_viewer_is_dropped(self, broadcaster: EventBroadcaster) -> None:
        # Arrange
        healthy = RecordingViewer()
        broken = RecordingViewer(fail_after=1)
        await broadcaster.connect(healthy)
        await broadcaster.connect(broken)

        # Act
        broadcaster.log("one")
        broadcaster.log("two")
        broadcaster.log("three")
        await flush_events()

        # Assert
        assert broadcaster.viewer_count == 1
        assert len(healthy.received) == 3
        assert len(broken.received) == 1
        assert broken.close_code == PRUNED_CLOSE_CODE
        assert healthy.close_code is None

    async def test_full_queue_drops_viewer(self) -> None:
        broadcaster = EventBroadcaster(queue_size=2)
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)

        # No await between publishes: the sender task never gets to run
        for i in range(5):
            broadcaster.log(f"line {i}")

        assert broadcaster.viewer_count == 0
        await flush_events()
        assert viewer.close_code == PRUNED_CLOSE_CODE
        await broadcaster.close()

    async def test_pruned_viewer_gets_nothing_more(self) -> None:
        broadcaster = EventBroadcaster(queue_size=2)
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        for i in range(5):
            broadcaster.log(f"line {i}")

        broadcaster.send_to(viewer, BroadcastEvent(type=EventType.PONG))
        await broadcaster.close()

        assert viewer.received == []
        assert viewer.close_code == PRUNED_CLOSE_CODE

    async def test_disconnect(self, broadcaster: EventBroadcaster) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)

        await broadcaster.disconnect(viewer)
        broadcaster.log("after")
        await flush_events()

        assert broadcaster.viewer_count == 0
        assert viewer.received == []

    async def test_connect_twice_is_one_viewer(self, broadcaster: EventBroadcaster) -> None:
        viewer = RecordingViewer()
        await broadcaster.connect(viewer)
        await broadcaster.connect(viewer)

        assert broadcaster.viewer_count == 1

    async def test_close_forgets_viewers(self) -> None:
        broadcaster = EventBroadcaster()
        await broadcaster.connect(RecordingViewer())
        await broadcaster.connect(RecordingViewer())

        await broadcaster.close()

        assert broadcaster.viewer_count == 0
