"""
WebSocket endpoint for live dashboard viewers.

Viewers connect to /ws and receive every BroadcastEvent. They may send:
- {"type": "ping"}                 -> {"type": "pong"}
- {"type": "get_status"}           -> {"type": "status", "payload": {...}}
- {"type": "reconnect_messaging"}  -> log event broadcast to every viewer

Replies go through the viewer's broadcast queue, so they keep their order
relative to broadcast events. A viewer that falls behind is closed by the
broadcaster with code 1013 and the dashboard reconnects.
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from reportsday.api.status import build_status
from reportsday.core.runtime import Runtime
from reportsday.models.enums import EventType, LogLevel
from reportsday.models.schemas import BroadcastEvent


logger = logging.getLogger(__name__)

router = APIRouter()


GREETING = "Connected to the ReportsDAY server"


async def handle_message(runtime: Runtime, websocket: WebSocket, message: dict) -> None:
    broadcaster = runtime.broadcaster
    message_type = message.get("type")

    if message_type == "ping":
        broadcaster.send_to(websocket, BroadcastEvent(type=EventType.PONG))
    elif message_type == "get_status":
        status = await build_status(runtime)
        broadcaster.send_to(websocket, BroadcastEvent(
            type=EventType.STATUS,
            payload=status.model_dump(mode="json"),
        ))
    elif message_type in ("reconnect_messaging", "reconnect_whatsapp"):
        broadcaster.log("Messaging reconnect requested...", LogLevel.INFO)
    else:
        logger.info(f"WebSocket: unknown message type {message_type!r}")


@router.websocket("/ws")
async def websocket_events(websocket: WebSocket):
    """Stream service events to a dashboard viewer."""
    runtime: Runtime = websocket.app.state.runtime
    broadcaster = runtime.broadcaster

    await websocket.accept()
    await broadcaster.connect(websocket)
    broadcaster.send_to(websocket, BroadcastEvent(
        type=EventType.LOG,
        payload={"message": GREETING, "level": LogLevel.SUCCESS.value},
    ))

    try:
        # The broadcaster closes viewers it prunes; stop reading once it has
        while websocket.application_state == WebSocketState.CONNECTED:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("WebSocket: ignoring non-JSON message")
                continue
            if isinstance(message, dict):
                await handle_message(runtime, websocket, message)
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(websocket)
