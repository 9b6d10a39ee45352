from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Set

from logging_config import get_logger

logger = get_logger(__name__)


class Transport(Protocol):
    async def emit(self, event: str, data: Any = None) -> None:
        ...


@dataclass(eq=False)
class Connection:
    """One live transport session. Hashes by identity."""

    id: str
    transport: Transport
    user_id: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)
    # Rooms asked for with join chat, as opposed to the private room added by identity setup
    joined_rooms: Set[str] = field(default_factory=set)

    @property
    def identified(self) -> bool:
        return self.user_id is not None

    async def emit(self, event: str, data: Any = None) -> None:
        await self.transport.emit(event, data)


class ConnectionRegistry:
    """In-memory maps between connections, identities and rooms.

    ``Connection.rooms`` and the room index are only ever changed together, so
    ``resolve`` never returns a connection that has been disconnected.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        # room_id -> {connection_id: connection}
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        # user_id -> {connection_id: connection}
        self._users: Dict[str, Dict[str, Connection]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: Connection) -> bool:
        return self.is_registered(connection)

    def add(self, connection_id: str, transport: Transport) -> Connection:
        existing = self._connections.get(connection_id)
        if existing is not None:
            logger.warning(f"Connection {connection_id} registered twice, dropping previous state")
            self.on_disconnect(existing)
        connection = Connection(id=connection_id, transport=transport)
        self._connections[connection_id] = connection
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self._connections)})")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def is_registered(self, connection: Connection) -> bool:
        return self._connections.get(connection.id) is connection

    def register_identity(self, connection: Connection, user_id: Optional[str]) -> bool:
        """Bind ``user_id`` to ``connection`` and join its private room.

        Returns False (and changes nothing) for an empty id or an unknown connection.
        """
        if not user_id:
            logger.warning(f"Ignoring empty identity for connection {connection.id}")
            return False
        if not self.is_registered(connection):
            logger.warning(f"Ignoring identity {user_id} for unregistered connection {connection.id}")
            return False

        if connection.user_id == user_id:
            logger.debug(f"Connection {connection.id} already identified as {user_id}")
            return True

        if connection.user_id is not None:
            logger.info(f"Connection {connection.id} rebinding identity {connection.user_id} -> {user_id}")
            self._unbind_identity(connection)

        connection.user_id = user_id
        self._users.setdefault(user_id, {})[connection.id] = connection
        self._add_member(connection, user_id)
        logger.debug(f"Connection {connection.id} identified as {user_id} ({len(self._users[user_id])} live connection(s))")
        return True

    def _unbind_identity(self, connection: Connection):
        user_id = connection.user_id
        if user_id is None:
            return
        if user_id not in connection.joined_rooms:
            self.leave_room(connection, user_id)
        user_connections = self._users.get(user_id)
        if user_connections is not None:
            user_connections.pop(connection.id, None)
            if not user_connections:
                del self._users[user_id]
        connection.user_id = None

    def join_room(self, connection: Connection, room_id: str) -> bool:
        if not self.is_registered(connection):
            logger.warning(f"Connection {connection.id} is not registered, cannot join room {room_id}")
            return False
        self._add_member(connection, room_id)
        connection.joined_rooms.add(room_id)
        return True

    def _add_member(self, connection: Connection, room_id: str):
        self._rooms.setdefault(room_id, {})[connection.id] = connection
        connection.rooms.add(room_id)

    def leave_room(self, connection: Connection, room_id: str):
        connection.rooms.discard(room_id)
        connection.joined_rooms.discard(room_id)
        members = self._rooms.get(room_id)
        if members is None:
            return
        if members.get(connection.id) is connection:
            del members[connection.id]
        if not members:
            # Rooms only exist while someone is in them
            del self._rooms[room_id]

    def resolve(self, room_id: str) -> Set[Connection]:
        return set(self._rooms.get(room_id, {}).values())

    def connections_for_user(self, user_id: str) -> Set[Connection]:
        return set(self._users.get(user_id, {}).values())

    def on_disconnect(self, connection: Connection) -> bool:
        """Remove every membership and the identity held by ``connection``.

        Safe to call more than once; only the first call does anything.
        """
        if not self.is_registered(connection):
            logger.debug(f"Connection {connection.id} already cleaned up")
            return False

        self._unbind_identity(connection)
        for room_id in list(connection.rooms):
            self.leave_room(connection, room_id)
        del self._connections[connection.id]
        logger.debug(f"Removed connection {connection.id} (live connections: {len(self._connections)})")
        return True

    def rooms(self) -> Set[str]:
        return set(self._rooms)

    def stats(self) -> dict:
        return {
            "connections": len(self._connections),
            "identified_users": len(self._users),
            "rooms": len(self._rooms),
        }

    def clear(self):
        for connection in list(self._connections.values()):
            self.on_disconnect(connection)
