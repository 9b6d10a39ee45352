"""Socket.IO binding for the room relay.

The relay keeps its own registry, so socket.io rooms are not used; each sid is
just a transport handle. Engine.IO's ping timeout surfaces as ``disconnect``,
which is the only place cleanup is triggered.
"""

from typing import Any, Optional

import socketio

from logging_config import get_logger
from realtime.events import INBOUND_EVENTS
from realtime.registry import ConnectionRegistry
from realtime.relay import RelayConfig, RoomRelay

logger = get_logger(__name__)


class SocketIOTransport:
    def __init__(self, sio: socketio.AsyncServer, sid: str):
        self.sio = sio
        self.sid = sid

    async def emit(self, event: str, data: Any = None) -> None:
        await self.sio.emit(event, data, to=self.sid)


def create_socket_server(config: RelayConfig) -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=list(config.cors_allowed_origins),
        ping_timeout=config.ping_timeout,
        ping_interval=config.ping_interval,
        logger=False,
        engineio_logger=False,
    )


def _make_event_handler(relay: RoomRelay, event: str):
    async def handler(sid: str, data: Any = None, *args):
        await relay.dispatch(sid, event, data)

    handler.__name__ = f"on_{event.replace(' ', '_')}"
    return handler


def attach(transport_server: socketio.AsyncServer, config: Optional[RelayConfig] = None,
           registry: Optional[ConnectionRegistry] = None) -> RoomRelay:
    """Bind relay handlers to ``transport_server`` and return the relay.

    A fresh ``ConnectionRegistry`` is created unless one is passed in.
    """
    relay = RoomRelay(registry=registry or ConnectionRegistry(), config=config or RelayConfig())

    async def connect(sid: str, environ: dict, auth: Any = None):
        relay.connect(sid, SocketIOTransport(transport_server, sid))

    async def disconnect(sid: str, reason: Any = None):
        logger.debug(f"Socket.IO disconnect for {sid}: {reason}")
        relay.disconnect(sid)

    transport_server.on("connect", connect)
    transport_server.on("disconnect", disconnect)
    for event in INBOUND_EVENTS:
        transport_server.on(event, _make_event_handler(relay, event))

    logger.info(f"Room relay attached to Socket.IO server ({', '.join(INBOUND_EVENTS)})")
    return relay
