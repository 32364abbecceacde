"""
Per-connection session state machine

    Disconnected -> Connected -> InRoom(room) -> InRoom(other) ...
                        ^              |
                        +-- leave -----+
    Connected / InRoom -- disconnect --> Disconnected

Registry mutations and the notifications they cause run without yielding
to the event loop. The only await is the metadata lookup on first room
creation; room history is fetched by a background task per join.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from realtime_chat.core.errors import JoinResult
from realtime_chat.core.logging import get_logger, log_websocket_event
from realtime_chat.schemas.message import ChatMessage, RoomHistory
from realtime_chat.services.identity import Identity
from realtime_chat.services.message_pipeline import MessagePipeline
from realtime_chat.services.persistence import PersistenceGateway
from realtime_chat.services.presence import PresenceBroadcaster
from realtime_chat.services.room_registry import RoomRegistry
from realtime_chat.websockets import events
from realtime_chat.websockets.connection_manager import ConnectionManager

logger = get_logger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    IN_ROOM = "in_room"


@dataclass
class Session:
    connection_id: str
    user_id: str
    is_guest: bool
    email: Optional[str] = None
    current_room_id: Optional[str] = None
    closed: bool = False

    @classmethod
    def from_identity(cls, connection_id: str, identity: Identity) -> "Session":
        return cls(
            connection_id=connection_id,
            user_id=identity.user_id,
            is_guest=identity.is_guest,
            email=identity.email,
        )

    @property
    def display_name(self) -> str:
        return self.user_id

    @property
    def state(self) -> SessionState:
        if self.closed:
            return SessionState.DISCONNECTED
        if self.current_room_id is None:
            return SessionState.CONNECTED
        return SessionState.IN_ROOM


@dataclass
class ChatContext:
    """Process-wide collaborators shared by every session."""
    registry: RoomRegistry
    connections: ConnectionManager
    presence: PresenceBroadcaster
    pipeline: MessagePipeline
    gateway: Optional[PersistenceGateway] = None


class SessionController:

    def __init__(self, session: Session, context: ChatContext):
        self.session = session
        self.registry = context.registry
        self.connections = context.connections
        self.presence = context.presence
        self.pipeline = context.pipeline
        self.gateway = context.gateway
        self._pending: Set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self.session.state

    async def join(self, room_id: Any, ack: Optional[int] = None) -> JoinResult:
        """
        Move the session into room_id.

        Membership and presence are applied before this returns. History is
        loaded in the background, so later frames from this connection are
        not held up by the store; the join acknowledgement follows the
        history frame.
        """
        session = self.session
        if session.closed:
            return self._reject_join("Connection closed", ack)
        if not isinstance(room_id, str) or not room_id.strip():
            return self._reject_join("Invalid room id", ack)
        room_id = room_id.strip()

        if session.current_room_id == room_id:
            # Re-join refreshes the member entry and the joiner's view only.
            room = self.registry.join(room_id, session.user_id, session.display_name, session.is_guest)
            self.presence.send_room_users(session.connection_id, room)
            self._load_history(room_id, ack)
            return JoinResult.ok()

        if session.current_room_id is not None:
            self._leave_current()

        await self.registry.get_or_create(room_id)
        if session.closed:
            self.registry.prune(room_id)
            return self._reject_join("Connection closed", ack)

        # Another connection of the same user may already hold the membership.
        already_present = self.registry.is_member(room_id, session.user_id)
        room = self.registry.join(room_id, session.user_id, session.display_name, session.is_guest)
        self.connections.subscribe(session.connection_id, room_id)
        session.current_room_id = room_id

        self.presence.send_room_users(session.connection_id, room)
        if not already_present:
            self.presence.user_joined(room, session.connection_id, session.user_id, session.display_name)
        log_websocket_event(logger, "join", session.user_id, room_id, user_count=room.member_count)

        self._load_history(room_id, ack)
        return JoinResult.ok()

    def _reject_join(self, reason: str, ack: Optional[int]) -> JoinResult:
        logger.warning(f"Join failed for {self.session.user_id}: {reason}")
        result = JoinResult.failed(reason)
        self.acknowledge(ack, result.to_dict())
        return result

    def _load_history(self, room_id: str, ack: Optional[int]):
        task = asyncio.create_task(self._send_history(room_id, ack))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_history(self, room_id: str, ack: Optional[int] = None):
        result = JoinResult.ok()
        messages = []
        if self.gateway is not None:
            try:
                messages = await self.gateway.get_recent_messages(room_id)
            except Exception as e:
                logger.error(f"Error loading history for room {room_id}: {e}", exc_info=True)
                result = JoinResult.failed(f"Failed to load room history: {e}")

        # The session may have moved on while history was loading.
        if self.session.current_room_id == room_id and not self.session.closed:
            payload = RoomHistory(room_id=room_id, messages=messages).to_wire()
            self.connections.emit(self.session.connection_id, events.ROOM_HISTORY, payload)
        self.acknowledge(ack, result.to_dict())

    def acknowledge(self, ack: Optional[int], payload: Dict[str, Any]):
        if ack is None:
            return
        self.connections.emit(self.session.connection_id, events.ACK, payload, ack=ack)

    @property
    def pending_history(self) -> int:
        return len(self._pending)

    async def settle(self):
        """Wait for background history loads started by join()."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def leave(self, room_id: Any):
        """Leave the current room. A room id that does not match is ignored."""
        if self.session.current_room_id is None or room_id != self.session.current_room_id:
            logger.debug(f"Ignoring leave of {room_id!r} from {self.session.user_id}")
            return
        self._leave_current()

    def _leave_current(self):
        session = self.session
        room_id = session.current_room_id
        if room_id is None:
            return

        self.connections.unsubscribe(session.connection_id, room_id)
        session.current_room_id = None

        # Another connection of the same user keeps the membership alive.
        if self.connections.user_connections_in_room(room_id, session.user_id):
            return

        remaining = self.registry.leave(room_id, session.user_id)
        self.presence.user_left(room_id, remaining, session.user_id, session.display_name)
        log_websocket_event(logger, "leave", session.user_id, room_id,
                            user_count=self.registry.member_count(room_id))

    def send(self, content: Any) -> Optional[ChatMessage]:
        room_id = self.session.current_room_id
        if room_id is None:
            logger.debug(f"Ignoring message from {self.session.user_id}: no active room")
            return None
        if not isinstance(content, str) or not content.strip():
            logger.debug(f"Ignoring empty message from {self.session.user_id}")
            return None
        return self.pipeline.send(room_id, self.session.user_id, self.session.display_name, content.strip())

    def typing(self, started: bool):
        room_id = self.session.current_room_id
        if room_id is None:
            return
        self.presence.typing(room_id, self.session.connection_id, self.session.user_id,
                             self.session.display_name, started)

    def disconnect(self):
        """Same cleanup as leave, then release the connection. Safe to repeat."""
        if self.session.closed:
            return
        self._leave_current()
        self.session.closed = True
        for task in list(self._pending):
            task.cancel()
        self.connections.unregister(self.session.connection_id)
        log_websocket_event(logger, "disconnect", self.session.user_id)
