"""In-process room broadcaster for realtime events.

Fire-and-forget: connections that aren't open simply miss the event (the
push channel covers offline users). No acks, no persistence — room
membership lives only as long as the WebSocket session that built it.

Room naming:
    technician-{user_id}   private feed for one technician
    request-{request_id}   everyone watching one request
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class Connection(Protocol):
    """Anything that can receive a JSON message (a WebSocket, a test stub)."""

    async def send_json(self, data: Any) -> None: ...


def technician_room(user_id) -> str:
    return f"technician-{user_id}"


def request_room(request_id) -> str:
    return f"request-{request_id}"


def make_envelope(event_type: str, data: Any) -> dict[str, Any]:
    """Wrap a payload in the {type, data, timestamp} event envelope."""
    return {
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class RoomBroadcaster:
    """Tracks live connections and their rooms; emits typed events.

    The membership tables are only mutated by connect/join/leave/disconnect
    and only read while emitting.
    """

    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._rooms: defaultdict[str, set[int]] = defaultdict(set)

    # ─── Membership ──────────────────────────────────────

    def connect(self, connection: Connection) -> None:
        self._connections[id(connection)] = connection
        logger.info("realtime.connected", connections=len(self._connections))

    def disconnect(self, connection: Connection) -> None:
        key = id(connection)
        self._connections.pop(key, None)
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(key)
            if not members:
                del self._rooms[room]
        logger.info("realtime.disconnected", connections=len(self._connections))

    def join(self, connection: Connection, room: str) -> None:
        key = id(connection)
        if key not in self._connections:
            self.connect(connection)
        self._rooms[room].add(key)
        logger.debug("realtime.joined", room=room)

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(id(connection))
        if not members:
            del self._rooms[room]
        logger.debug("realtime.left", room=room)

    def rooms_of(self, connection: Connection) -> set[str]:
        key = id(connection)
        return {room for room, members in self._rooms.items() if key in members}

    def member_count(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # ─── Emit ────────────────────────────────────────────

    async def broadcast_all(self, event_type: str, data: Any) -> None:
        """Emit an event to every connected client."""
        await self._emit(list(self._connections.values()), make_envelope(event_type, data))

    async def broadcast_to_room(self, room: str, event_type: str, data: Any) -> None:
        """Emit an event only to members of a room."""
        members = [
            self._connections[key]
            for key in self._rooms.get(room, set())
            if key in self._connections
        ]
        await self._emit(members, make_envelope(event_type, data))

    async def _emit(self, connections: list[Connection], message: dict) -> None:
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as e:
                # A dead socket is dropped, never reported to the caller
                logger.warning("realtime.send_failed", error=str(e))
                self.disconnect(connection)


# Singleton: one room table per process
broadcaster = RoomBroadcaster()


def get_broadcaster() -> RoomBroadcaster:
    """FastAPI dependency returning the process-wide broadcaster."""
    return broadcaster
