"""
Presence notifications derived from registry transitions.

Each notice carries the acting user and the room's member count after the
change. Typing signals are pure fan-out and never touch the registry.
"""

from typing import Optional

from realtime_chat.core.logging import get_logger
from realtime_chat.schemas.room import PresenceNotice, RoomUsers
from realtime_chat.services.room_registry import Room, RoomRegistry
from realtime_chat.websockets import events
from realtime_chat.websockets.connection_manager import ConnectionManager

logger = get_logger(__name__)


class PresenceBroadcaster:

    def __init__(self, registry: RoomRegistry, connections: ConnectionManager):
        self._registry = registry
        self._connections = connections

    def _notice(self, user_id: str, display_name: str, room_id: str) -> dict:
        return PresenceNotice(
            user_id=user_id,
            display_name=display_name,
            user_count=self._registry.member_count(room_id),
        ).to_wire()

    def send_room_users(self, connection_id: str, room: Room):
        """room:users to the joiner: the current member list."""
        payload = RoomUsers(
            room_id=room.room_id,
            users=room.member_list(),
            user_count=room.member_count,
        ).to_wire()
        self._connections.emit(connection_id, events.ROOM_USERS, payload)

    def user_joined(self, room: Room, connection_id: str, user_id: str, display_name: str) -> int:
        """Notify everyone in the room except the joining connection."""
        return self._connections.broadcast_to_room(
            room.room_id,
            events.ROOM_USER_JOINED,
            self._notice(user_id, display_name, room.room_id),
            exclude=connection_id,
        )

    def user_left(self, room_id: str, remaining: Optional[Room], user_id: str, display_name: str) -> int:
        """Notify the remaining members. An emptied room has nobody to tell."""
        if remaining is None:
            logger.debug(f"Room {room_id} emptied by {user_id}; user-left not delivered")
            return 0
        return self._connections.broadcast_to_room(
            room_id,
            events.ROOM_USER_LEFT,
            self._notice(user_id, display_name, room_id),
        )

    def typing(self, room_id: str, connection_id: str, user_id: str, display_name: str, started: bool) -> int:
        event = events.TYPING_STARTED if started else events.TYPING_STOPPED
        return self._connections.broadcast_to_room(
            room_id,
            event,
            self._notice(user_id, display_name, room_id),
            exclude=connection_id,
        )
