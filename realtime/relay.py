from dataclasses import dataclass
from typing import Any, Iterable, Optional, Set, Tuple

import constants
from logging_config import get_logger
from realtime.events import (
    CONNECTED,
    MESSAGE_RECEIVED,
    STOP_TYPING,
    TYPING,
    IdentitySetup,
    InboundEvent,
    JoinRoom,
    MalformedEventPayload,
    MessageSend,
    TypingStart,
    TypingStop,
    parse_inbound,
)
from realtime.registry import Connection, ConnectionRegistry, Transport

logger = get_logger(__name__)


@dataclass(frozen=True)
class RelayConfig:
    ping_timeout: int = 60
    ping_interval: int = 25
    cors_allowed_origins: Tuple[str, ...] = ("http://localhost:3000",)
    socketio_path: str = "socket.io"

    @classmethod
    def from_env(cls) -> "RelayConfig":
        return cls(
            ping_timeout=constants.PING_TIMEOUT,
            ping_interval=constants.PING_INTERVAL,
            cors_allowed_origins=tuple(constants.CORS_ORIGINS),
            socketio_path=constants.SOCKETIO_PATH,
        )


class RoomRelay:
    """Turns inbound client events into outbound events for other connections.

    Every handler runs to completion on the event loop; the only suspension
    points are sends, and each send re-checks that its target is still registered.
    Failures are contained per event and never reported back to clients.
    """

    def __init__(self, registry: Optional[ConnectionRegistry] = None, config: Optional[RelayConfig] = None):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.config = config or RelayConfig()

    def connect(self, connection_id: str, transport: Transport) -> Connection:
        connection = self.registry.add(connection_id, transport)
        logger.info(f"Connection {connection_id} opened")
        return connection

    def disconnect(self, connection_id: str) -> bool:
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.debug(f"Disconnect for unknown connection {connection_id}")
            return False
        user_id = connection.user_id
        self.registry.on_disconnect(connection)
        logger.info(f"Connection {connection_id} closed (user: {user_id})")
        return True

    async def dispatch(self, connection_id: str, event: str, data: Any = None) -> int:
        """Parse and handle one wire event. Returns the number of deliveries made."""
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.warning(f"Dropping '{event}' from unknown connection {connection_id}")
            return 0
        try:
            inbound = parse_inbound(event, data)
        except MalformedEventPayload as e:
            logger.warning(f"Dropping malformed '{e.event}' from connection {connection_id}: {e.reason}")
            return 0
        return await self.handle(connection, inbound)

    async def handle(self, connection: Connection, event: InboundEvent) -> int:
        if isinstance(event, IdentitySetup):
            return await self._identity_setup(connection, event)
        if isinstance(event, JoinRoom):
            self.registry.join_room(connection, event.room_id)
            logger.debug(f"Connection {connection.id} joined room {event.room_id}")
            return 0
        if isinstance(event, TypingStart):
            return await self.broadcast(event.room_id, TYPING, event.room_id, exclude=connection)
        if isinstance(event, TypingStop):
            return await self.broadcast(event.room_id, STOP_TYPING, event.room_id, exclude=connection)
        if isinstance(event, MessageSend):
            return await self._message_send(connection, event)
        raise TypeError(f"Unhandled inbound event {event!r}")

    async def _identity_setup(self, connection: Connection, event: IdentitySetup) -> int:
        if not self.registry.register_identity(connection, event.user_id):
            return 0
        return await self.fan_out([connection], CONNECTED)

    async def _message_send(self, connection: Connection, event: MessageSend) -> int:
        targets: Set[Connection] = set()
        for user_id in event.recipient_ids:
            resolved = self.registry.resolve(user_id)
            if not resolved:
                logger.debug(f"Recipient {user_id} has no live connections")
            targets.update(resolved)
        # Never echo to the sender, whichever room the sender's connections are in
        targets = {c for c in targets if c is not connection and c.user_id != event.sender_id}
        return await self.fan_out(targets, MESSAGE_RECEIVED, event.payload)

    async def broadcast(self, room_id: str, event: str, data: Any = None, exclude: Optional[Connection] = None) -> int:
        targets = self.registry.resolve(room_id)
        targets.discard(exclude)
        return await self.fan_out(targets, event, data)

    async def fan_out(self, targets: Iterable[Connection], event: str, data: Any = None) -> int:
        delivered = 0
        for target in list(targets):
            # A previous send may have suspended long enough for this one to close
            if not self.registry.is_registered(target):
                logger.debug(f"Skipping '{event}' to closed connection {target.id}")
                continue
            try:
                await target.emit(event, data)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to deliver '{event}' to connection {target.id}: {e}")
        if delivered:
            logger.debug(f"Delivered '{event}' to {delivered} connection(s)")
        return delivered

    def stats(self) -> dict:
        return self.registry.stats()

    def shutdown(self):
        logger.info(f"Shutting down relay with {len(self.registry)} live connection(s)")
        self.registry.clear()
