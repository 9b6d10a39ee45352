"""Plain WebSocket transport for clients that don't speak socket.io.

Every frame, in both directions, is a JSON object ``{"event": <name>, "data": <payload>}``.
"""

import json
import uuid
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from logging_config import get_logger
from realtime.relay import RoomRelay

logger = get_logger(__name__)


class WebSocketTransport:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def emit(self, event: str, data: Any = None) -> None:
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))


def decode_frame(text: str):
    """Return ``(event, data)`` for a frame, or ``None`` if it can't be used."""
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        return None
    return frame["event"], frame.get("data")


async def serve_websocket(relay: RoomRelay, websocket: WebSocket):
    """Run one client session until the socket closes."""
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    relay.connect(connection_id, WebSocketTransport(websocket))
    logger.info(f"WebSocket connection {connection_id} accepted")

    message_count = 0
    try:
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break
            message_count += 1

            decoded = decode_frame(text)
            if decoded is None:
                logger.warning(f"Dropping undecodable frame #{message_count} from connection {connection_id}")
                continue
            event, data = decoded
            logger.debug(f"Received '{event}' (#{message_count}) from connection {connection_id}")
            await relay.dispatch(connection_id, event, data)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        relay.disconnect(connection_id)
