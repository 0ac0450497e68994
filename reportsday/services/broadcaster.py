"""
Event broadcaster for live dashboard viewers.

Every connected viewer gets a bounded FIFO queue drained by its own sender
task, so events reach each viewer in publish order and a slow viewer never
blocks the publisher or the other viewers. A viewer whose send fails, or
whose queue is full, is pruned and its connection closed.

publish() is synchronous and never blocks: the scheduler, aggregator and
webhook route call it freely. With no viewers connected it is a no-op.

Usage:
    broadcaster = EventBroadcaster(queue_size=100)
    await broadcaster.connect(websocket)
    broadcaster.log("Computing KPIs...")
    broadcaster.kpi_update(kpis)
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, Set

from reportsday.models.enums import EventType, LogLevel
from reportsday.models.schemas import BroadcastEvent, CallRecord, KPISnapshot


logger = logging.getLogger(__name__)

# WebSocket close code "Try Again Later" sent to pruned viewers
PRUNED_CLOSE_CODE = 1013


class Viewer(Protocol):
    """Anything that can receive JSON events (a FastAPI WebSocket in production)."""

    async def send_json(self, data: Any) -> None:
        ...

    async def close(self, code: int = 1000) -> None:
        ...


class _Channel:
    __slots__ = ("viewer", "queue", "task")

    def __init__(self, viewer: Viewer, queue_size: int) -> None:
        self.viewer = viewer
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.task: Optional[asyncio.Task] = None


class EventBroadcaster:
    """Fans BroadcastEvents out to every connected viewer."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._channels: Dict[int, _Channel] = {}
        self._closing: Set[asyncio.Task] = set()

    @property
    def viewer_count(self) -> int:
        return len(self._channels)

    async def connect(self, viewer: Viewer) -> None:
        key = id(viewer)
        if key in self._channels:
            return
        channel = _Channel(viewer, self._queue_size)
        channel.task = asyncio.create_task(self._drain(key, channel))
        self._channels[key] = channel
        logger.info(f"Viewer connected ({self.viewer_count} total)")

    async def disconnect(self, viewer: Viewer) -> None:
        channel = self._channels.pop(id(viewer), None)
        if channel is None:
            return
        await self._stop_channel(channel)
        logger.info(f"Viewer disconnected ({self.viewer_count} total)")

    def publish(self, event: BroadcastEvent) -> None:
        """Queue ``event`` for every viewer; never blocks, never raises."""
        if not self._channels:
            return
        data = event.model_dump(mode="json")
        for key, channel in list(self._channels.items()):
            self._enqueue(key, channel, data)

    def send_to(self, viewer: Viewer, event: BroadcastEvent) -> None:
        """Queue ``event`` for a single viewer, keeping its ordering."""
        key = id(viewer)
        channel = self._channels.get(key)
        if channel is not None:
            self._enqueue(key, channel, event.model_dump(mode="json"))

    def _enqueue(self, key: int, channel: _Channel, data: Dict[str, Any]) -> None:
        try:
            channel.queue.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning("Viewer queue full, dropping viewer")
            self._prune(key)

    def _prune(self, key: int) -> None:
        channel = self._channels.pop(key, None)
        if channel is None:
            return
        if channel.task is not None and channel.task is not asyncio.current_task():
            channel.task.cancel()
        closer = asyncio.create_task(self._close_viewer(channel.viewer))
        self._closing.add(closer)
        closer.add_done_callback(self._closing.discard)

    async def _close_viewer(self, viewer: Viewer) -> None:
        try:
            await viewer.close(code=PRUNED_CLOSE_CODE)
        except Exception as e:
            logger.debug(f"Closing pruned viewer failed: {e}")

    async def _drain(self, key: int, channel: _Channel) -> None:
        while True:
            data = await channel.queue.get()
            try:
                await channel.viewer.send_json(data)
            except Exception as e:
                logger.info(f"Dropping viewer after send failure: {e}")
                self._prune(key)
                return

    async def _stop_channel(self, channel: _Channel) -> None:
        if channel.task is None or channel.task.done():
            return
        channel.task.cancel()
        try:
            await channel.task
        except asyncio.CancelledError:
            pass

    # -------------------------------------------------------------------------
    # Convenience publishers
    # -------------------------------------------------------------------------

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.publish(BroadcastEvent(
            type=EventType.LOG,
            payload={"message": message, "level": level.value},
        ))

    def kpi_update(self, kpis: KPISnapshot) -> None:
        self.publish(BroadcastEvent(type=EventType.D0_UPDATE, payload=kpis.model_dump(mode="json")))

    def new_call(self, record: CallRecord) -> None:
        self.publish(BroadcastEvent(type=EventType.NEW_CALL, payload=record.model_dump(mode="json")))

    async def close(self) -> None:
        """Stop every sender task and forget all viewers."""
        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            await self._stop_channel(channel)
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
