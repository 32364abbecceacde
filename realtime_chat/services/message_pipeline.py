"""
Message ingestion and broadcast.

send() builds the message, starts a persistence write it never waits for,
and queues message:new for every connection in the room, sender included.
Broadcast order within a room is the order send() was called; persistence
may complete in any order.
"""

import asyncio
from typing import Callable, Optional, Set

from realtime_chat.core.logging import get_logger
from realtime_chat.schemas.message import ChatMessage
from realtime_chat.services.persistence import PersistenceGateway
from realtime_chat.services.room_registry import now_ms
from realtime_chat.websockets import events
from realtime_chat.websockets.connection_manager import ConnectionManager

logger = get_logger(__name__)

PersistHook = Callable[[ChatMessage, bool], None]


class MessagePipeline:

    def __init__(
        self,
        connections: ConnectionManager,
        gateway: Optional[PersistenceGateway] = None,
        on_persisted: Optional[PersistHook] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._connections = connections
        self._gateway = gateway
        self._on_persisted = on_persisted
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def send(self, room_id: str, user_id: str, display_name: str, content: str) -> ChatMessage:
        """
        Broadcast a message to the room. The caller guarantees the sender is
        currently a member of room_id.
        """
        message = ChatMessage(
            room_id=room_id,
            timestamp=self._clock(),
            user_id=user_id,
            display_name=display_name,
            content=content,
        )
        self._persist(message)
        delivered = self._connections.broadcast_to_room(room_id, events.MESSAGE_NEW, message.to_wire())
        logger.debug(f"Message from {user_id} delivered to {delivered} connection(s) in room {room_id}")
        return message

    def _persist(self, message: ChatMessage):
        if self._gateway is None:
            self._notify(message, False)
            return

        task = asyncio.create_task(self._gateway.save_message(message))
        self._pending.add(task)
        task.add_done_callback(lambda done: self._on_write_done(message, done))

    def _on_write_done(self, message: ChatMessage, task: asyncio.Task):
        self._pending.discard(task)

        if task.cancelled():
            success = False
            logger.warning(f"Persistence of message to room {message.room_id} was cancelled")
        elif task.exception() is not None:
            success = False
            logger.error(
                f"Failed to persist message to room {message.room_id}",
                exc_info=task.exception(),
            )
        else:
            success = bool(task.result())
            if not success:
                logger.warning(f"Message to room {message.room_id} was not persisted")

        self._notify(message, success)

    def _notify(self, message: ChatMessage, success: bool):
        if self._on_persisted is None:
            return
        try:
            self._on_persisted(message, success)
        except Exception:
            logger.exception("Persistence completion hook failed")

    async def drain(self, timeout: Optional[float] = None):
        """Wait for in-flight writes, e.g. at shutdown."""
        if not self._pending:
            return
        done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} message write(s) still pending at shutdown")
