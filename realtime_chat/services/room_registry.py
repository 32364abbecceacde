"""
In-memory room directory

The registry is the single source of truth for who is in which room on this
instance. A room exists only while it has members: it is created on first
join and dropped together with its last member. Every method except
get_or_create is synchronous, so a mutation and the notifications derived
from it complete without yielding to the event loop.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from realtime_chat.core.logging import get_logger
from realtime_chat.schemas.room import Member, RoomSummary
from realtime_chat.services.persistence import PersistenceGateway

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Room:
    room_id: str
    display_name: str
    created_at: int
    allowed_groups: Optional[Set[str]] = None
    members: Dict[str, Member] = field(default_factory=dict)

    @property
    def member_count(self) -> int:
        return len(self.members)

    def member_list(self) -> List[Member]:
        return list(self.members.values())

    def to_summary(self) -> RoomSummary:
        return RoomSummary(
            room_id=self.room_id,
            name=self.display_name,
            user_count=self.member_count,
            created_at=self.created_at,
            allowed_groups=sorted(self.allowed_groups) if self.allowed_groups else None,
        )


class RoomRegistry:
    """Rooms and their member sets for a single running instance."""

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._gateway = gateway
        self._clock = clock
        self._rooms: Dict[str, Room] = {}

    async def get_or_create(self, room_id: str) -> Room:
        """
        Return the live room, creating it from stored metadata if needed.

        The metadata lookup is the only await; a room created by another
        connection while it was pending wins and is returned unchanged.
        """
        room = self._rooms.get(room_id)
        if room is not None:
            return room

        metadata = None
        if self._gateway is not None:
            try:
                metadata = await self._gateway.get_room_metadata(room_id)
            except Exception as e:
                logger.warning(f"Could not fetch room metadata for {room_id}: {e}")

        room = self._rooms.get(room_id)
        if room is not None:
            return room

        room = Room(
            room_id=room_id,
            display_name=(metadata.name if metadata and metadata.name else room_id),
            created_at=(metadata.created_at if metadata and metadata.created_at else self._clock()),
            allowed_groups=(set(metadata.allowed_groups) if metadata and metadata.allowed_groups else None),
        )
        self._rooms[room_id] = room
        logger.debug(f"Room {room_id} created (metadata={'yes' if metadata else 'no'})")
        return room

    def join(self, room_id: str, user_id: str, display_name: str, is_guest: bool) -> Room:
        """Insert or overwrite the member entry. Never fails."""
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id, display_name=room_id, created_at=self._clock())
            self._rooms[room_id] = room
        room.members[user_id] = Member(user_id=user_id, display_name=display_name, is_guest=is_guest)
        return room

    def leave(self, room_id: str, user_id: str) -> Optional[Room]:
        """
        Remove the member. Returns the surviving room, or None when the room
        was emptied (and deleted) or was never there.
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None

        room.members.pop(user_id, None)

        if not room.members:
            del self._rooms[room_id]
            logger.debug(f"Room {room_id} removed (empty)")
            return None
        return room

    def prune(self, room_id: str):
        """Drop a room that was created but never joined."""
        room = self._rooms.get(room_id)
        if room is not None and not room.members:
            del self._rooms[room_id]

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_all_rooms(self) -> List[Room]:
        return [room for room in self._rooms.values() if room.members]

    def members_of(self, room_id: str) -> List[Member]:
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return room.member_list()

    def member_count(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return room.member_count if room else 0

    def is_member(self, room_id: str, user_id: str) -> bool:
        room = self._rooms.get(room_id)
        return room is not None and user_id in room.members

    def clear(self):
        self._rooms.clear()
