import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from realtime_chat.schemas.envelope import Frame

logger = logging.getLogger(__name__)

_CLOSE = None


class ConnectionManager:
    """
    Outbound side of the transport.

    Each connection gets an ordered outbox drained by a single writer task,
    so emitting is synchronous for the dispatcher and frames reach a client in
    the order they were emitted. Room channels map a room to the connections
    subscribed to its broadcasts.
    """

    def __init__(self):
        # {connection_id: outbox}
        self.outboxes: Dict[str, asyncio.Queue] = {}
        # {room_id: {connection_id}}
        self.room_connections: Dict[str, Set[str]] = {}
        # {connection_id: room_id}
        self.connection_rooms: Dict[str, str] = {}
        # {connection_id: user_id}
        self.connection_users: Dict[str, str] = {}

    def register(self, connection_id: str, user_id: Optional[str] = None) -> asyncio.Queue:
        outbox: asyncio.Queue = asyncio.Queue()
        self.outboxes[connection_id] = outbox
        if user_id is not None:
            self.connection_users[connection_id] = user_id
        return outbox

    def unregister(self, connection_id: str):
        room_id = self.connection_rooms.get(connection_id)
        if room_id is not None:
            self.unsubscribe(connection_id, room_id)

        self.connection_users.pop(connection_id, None)
        outbox = self.outboxes.pop(connection_id, None)
        if outbox is not None:
            outbox.put_nowait(_CLOSE)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.outboxes

    def subscribe(self, connection_id: str, room_id: str):
        previous = self.connection_rooms.get(connection_id)
        if previous is not None and previous != room_id:
            self.unsubscribe(connection_id, previous)
        self.room_connections.setdefault(room_id, set()).add(connection_id)
        self.connection_rooms[connection_id] = room_id

    def unsubscribe(self, connection_id: str, room_id: str):
        connections = self.room_connections.get(room_id)
        if connections is not None:
            connections.discard(connection_id)
            if not connections:
                del self.room_connections[room_id]
        if self.connection_rooms.get(connection_id) == room_id:
            del self.connection_rooms[connection_id]

    def emit(self, connection_id: str, event: str, data: Any = None, ack: Optional[int] = None) -> bool:
        """Queue one frame for a connection. Returns False if it is gone."""
        outbox = self.outboxes.get(connection_id)
        if outbox is None:
            return False
        outbox.put_nowait(Frame(event=event, data=data, ack=ack).to_wire())
        return True

    def broadcast_to_room(self, room_id: str, event: str, data: Any = None, exclude: Optional[str] = None) -> int:
        """Queue a frame for every connection in the room. Returns the recipient count."""
        delivered = 0
        for connection_id in self.get_room_connections(room_id):
            if exclude is not None and connection_id == exclude:
                continue
            if self.emit(connection_id, event, data):
                delivered += 1
        return delivered

    def get_room_connections(self, room_id: str) -> List[str]:
        return sorted(self.room_connections.get(room_id, ()))

    def user_connections_in_room(self, room_id: str, user_id: str) -> List[str]:
        """Connections of a user that are still subscribed to the room."""
        return [
            connection_id for connection_id in self.get_room_connections(room_id)
            if self.connection_users.get(connection_id) == user_id
        ]

    def get_connection_room(self, connection_id: str) -> Optional[str]:
        return self.connection_rooms.get(connection_id)

    async def pump(self, connection_id: str, websocket: WebSocket, outbox: asyncio.Queue):
        """Write queued frames to the socket until the connection is released."""
        while True:
            frame = await outbox.get()
            if frame is _CLOSE:
                break
            try:
                await websocket.send_json(frame)
            except Exception as e:
                logger.warning(f"Failed to send {frame.get('event')} to connection {connection_id}: {e}")
                # Stop queueing for a socket that can no longer be written.
                if self.outboxes.get(connection_id) is outbox:
                    del self.outboxes[connection_id]
                break
