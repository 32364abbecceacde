"""
Durable store gateway

Room metadata and message history live in MongoDB when it is reachable.
Availability is decided once at startup and downgraded if a call later finds
the server gone; from then on every operation returns its safe default
without touching the network. Nothing raised by the driver leaves this module.
"""

import time
from typing import Callable, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import DESCENDING
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from realtime_chat.core.config import Settings
from realtime_chat.core.errors import StoreUnavailable
from realtime_chat.core.logging import get_logger, log_persistence_event
from realtime_chat.database.mongodb import create_mongo_client, init_mongodb, close_mongo_client
from realtime_chat.models import MessageDocument, RoomMetadataDocument
from realtime_chat.schemas.message import ChatMessage
from realtime_chat.schemas.room import RoomMetadata

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

_UNREACHABLE_ERRORS = (ConnectionFailure, ServerSelectionTimeoutError)


class PersistenceGateway:
    """Optional MongoDB-backed store for room metadata and message history."""

    def __init__(
        self,
        config: Settings,
        client_factory: Callable[[Settings], AsyncIOMotorClient] = create_mongo_client,
    ):
        self._config = config
        self._client_factory = client_factory
        self._client: Optional[AsyncIOMotorClient] = None
        self._available = False
        self._init_attempted = False

    @property
    def history_limit(self) -> int:
        return self._config.history_limit

    def is_available(self) -> bool:
        return self._available

    async def initialize(self) -> bool:
        """Connect once. Failure only disables the capability."""
        if self._init_attempted:
            return self._available
        self._init_attempted = True

        if not self._config.mongo_url:
            logger.warning("MongoDB not configured - using in-memory rooms only")
            return False

        try:
            self._client = self._client_factory(self._config)
            await init_mongodb(self._client, self._config.mongodb_db_name)
            self._available = True
            logger.info(f"Persistence initialized for database {self._config.mongodb_db_name}")
        except Exception as e:
            self._available = False
            logger.warning(f"MongoDB unavailable - using in-memory rooms only. Error: {e}")
        return self._available

    async def close(self):
        if self._client is not None:
            close_mongo_client(self._client)
            self._client = None
        self._available = False

    def _require_available(self, operation: str):
        if not self._available:
            raise StoreUnavailable(operation)

    def _record_failure(self, operation: str, collection: str, error: Exception):
        if isinstance(error, _UNREACHABLE_ERRORS):
            self._available = False
            logger.warning(f"MongoDB unreachable during {operation}; disabling persistence")
        log_persistence_event(logger, operation, collection, success=False, error=str(error))

    def message_ttl(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return int(now) + self._config.message_ttl_days * SECONDS_PER_DAY

    # =========================================================================
    # Room metadata
    # =========================================================================

    async def get_room_metadata(self, room_id: str) -> Optional[RoomMetadata]:
        """Stored metadata for a room, or None if missing or unavailable."""
        try:
            self._require_available("get_room_metadata")
            document = await RoomMetadataDocument.find_one(RoomMetadataDocument.room_id == room_id)
        except StoreUnavailable:
            logger.warning(f"Store unavailable; no metadata for room {room_id}")
            return None
        except Exception as e:
            self._record_failure("get_room_metadata", "chat_rooms", e)
            return None

        if document is None:
            return None
        log_persistence_event(logger, "get_room_metadata", "chat_rooms", room_id=room_id)
        return document.to_metadata()

    async def get_all_room_metadata(self) -> List[RoomMetadata]:
        try:
            self._require_available("get_all_room_metadata")
            documents = await RoomMetadataDocument.find_all().to_list()
        except StoreUnavailable:
            logger.warning("Store unavailable; room catalog is empty")
            return []
        except Exception as e:
            self._record_failure("get_all_room_metadata", "chat_rooms", e)
            return []

        log_persistence_event(logger, "get_all_room_metadata", "chat_rooms", count=len(documents))
        return [document.to_metadata() for document in documents]

    # =========================================================================
    # Messages
    # =========================================================================

    async def save_message(self, message: ChatMessage) -> bool:
        """Persist a copy of the message with an expiry. Returns success."""
        try:
            self._require_available("save_message")
            stored = message.model_copy(update={"ttl": self.message_ttl()})
            await MessageDocument.from_message(stored).insert()
        except StoreUnavailable:
            logger.warning(f"Store unavailable; message to room {message.room_id} not persisted")
            return False
        except Exception as e:
            self._record_failure("save_message", "messages", e)
            return False

        log_persistence_event(logger, "save_message", "messages", room_id=message.room_id)
        return True

    async def get_recent_messages(self, room_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Most recent messages of a room, oldest first."""
        limit = limit or self.history_limit
        try:
            self._require_available("get_recent_messages")
            documents = await MessageDocument.find(
                MessageDocument.room_id == room_id
            ).sort([("timestamp", DESCENDING)]).limit(limit).to_list()
        except StoreUnavailable:
            logger.warning(f"Store unavailable; empty history for room {room_id}")
            return []
        except Exception as e:
            self._record_failure("get_recent_messages", "messages", e)
            return []

        log_persistence_event(logger, "get_recent_messages", "messages", room_id=room_id, count=len(documents))
        return [document.to_message() for document in reversed(documents)]
