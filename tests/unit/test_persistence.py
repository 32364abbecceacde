from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from realtime_chat.core.config import Settings
from realtime_chat.models import MessageDocument, RoomMetadataDocument
from realtime_chat.schemas.message import ChatMessage
from realtime_chat.services.persistence import SECONDS_PER_DAY, PersistenceGateway


def make_message(**overrides) -> ChatMessage:
    fields = dict(room_id="general", timestamp=1_700_000_000_000, user_id="alice",
                  display_name="alice", content="hi")
    fields.update(overrides)
    return ChatMessage(**fields)


def reachable_client():
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    return client


@pytest.fixture
def mongo_settings() -> Settings:
    return Settings(mongo_url="mongodb://db.test:27017", mongodb_db_name="chat_test", message_ttl_days=7)


@pytest_asyncio.fixture
async def available_gateway(mongo_settings):
    gateway = PersistenceGateway(mongo_settings, client_factory=lambda config: reachable_client())
    with patch("realtime_chat.database.mongodb.init_beanie", new=AsyncMock()):
        assert await gateway.initialize() is True
    return gateway


class TestInitialization:

    @pytest.mark.asyncio
    async def test_unconfigured_store_runs_in_memory(self):
        gateway = PersistenceGateway(Settings(mongo_url=None))

        assert await gateway.initialize() is False
        assert gateway.is_available() is False

    @pytest.mark.asyncio
    async def test_unreachable_store_disables_capability(self, mongo_settings):
        client = MagicMock()
        client.admin.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        gateway = PersistenceGateway(mongo_settings, client_factory=lambda config: client)

        assert await gateway.initialize() is False
        assert gateway.is_available() is False

    @pytest.mark.asyncio
    async def test_initialization_is_attempted_once(self, mongo_settings):
        factory = MagicMock(side_effect=RuntimeError("driver blew up"))
        gateway = PersistenceGateway(mongo_settings, client_factory=factory)

        assert await gateway.initialize() is False
        assert await gateway.initialize() is False
        assert factory.call_count == 1

    @pytest.mark.asyncio
    async def test_successful_initialization(self, mongo_settings):
        client = reachable_client()
        gateway = PersistenceGateway(mongo_settings, client_factory=lambda config: client)
        init_beanie = AsyncMock()

        with patch("realtime_chat.database.mongodb.init_beanie", new=init_beanie):
            assert await gateway.initialize() is True

        assert gateway.is_available() is True
        assert init_beanie.await_count == 1
        assert init_beanie.await_args.kwargs["document_models"] == [RoomMetadataDocument, MessageDocument]

        await gateway.close()
        assert gateway.is_available() is False
        client.close.assert_called_once()


class TestUnavailableShortCircuit:

    @pytest.mark.asyncio
    async def test_operations_return_safe_defaults(self):
        gateway = PersistenceGateway(Settings(mongo_url=None))
        await gateway.initialize()

        assert await gateway.get_room_metadata("general") is None
        assert await gateway.get_all_room_metadata() == []
        assert await gateway.save_message(make_message()) is False
        assert await gateway.get_recent_messages("general") == []


class TestCallFailures:

    @pytest.mark.asyncio
    async def test_unreachable_during_write_disables_store(self, available_gateway):
        document = MagicMock()
        document.insert = AsyncMock(side_effect=ServerSelectionTimeoutError("gone"))

        with patch.object(MessageDocument, "from_message", return_value=document):
            assert await available_gateway.save_message(make_message()) is False

        assert available_gateway.is_available() is False
        assert await available_gateway.get_recent_messages("general") == []

    @pytest.mark.asyncio
    async def test_other_errors_keep_store_enabled(self, available_gateway):
        document = MagicMock()
        document.insert = AsyncMock(side_effect=OperationFailure("duplicate key"))

        with patch.object(MessageDocument, "from_message", return_value=document):
            assert await available_gateway.save_message(make_message()) is False

        assert available_gateway.is_available() is True

    @pytest.mark.asyncio
    async def test_successful_write_stamps_ttl(self, available_gateway):
        document = MagicMock()
        document.insert = AsyncMock()

        with patch.object(MessageDocument, "from_message", return_value=document) as from_message:
            assert await available_gateway.save_message(make_message()) is True

        stored = from_message.call_args.args[0]
        assert stored.ttl is not None
        assert stored.content == "hi"

    @pytest.mark.asyncio
    async def test_read_failures_never_raise(self, available_gateway):
        assert await available_gateway.get_room_metadata("general") is None
        assert await available_gateway.get_all_room_metadata() == []
        assert await available_gateway.get_recent_messages("general") == []


class TestRecords:

    def test_message_ttl_is_days_ahead(self):
        gateway = PersistenceGateway(Settings(mongo_url=None, message_ttl_days=7))
        assert gateway.message_ttl(now=1_000.5) == 1_000 + 7 * SECONDS_PER_DAY

    def test_message_document_round_trip_fields(self):
        document = MessageDocument.model_construct(
            room_id="general", timestamp=5, user_id="alice", display_name="alice",
            content="hello", ttl=99, expires_at=None,
        )
        message = document.to_message()

        assert message.to_wire() == {
            "roomId": "general", "timestamp": 5, "userId": "alice",
            "displayName": "alice", "content": "hello", "ttl": 99,
        }

    def test_room_metadata_document(self):
        document = RoomMetadataDocument.model_construct(
            room_id="general", name="General", created_at=1, allowed_groups=["a", "b"],
        )
        metadata = document.to_metadata()

        assert metadata.name == "General"
        assert metadata.allowed_groups == ["a", "b"]
