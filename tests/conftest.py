import asyncio
import time
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwk, jwt

from realtime_chat.core.config import AuthPolicy, Settings
from realtime_chat.main import build_chat_context, create_app
from realtime_chat.schemas.message import ChatMessage
from realtime_chat.schemas.room import RoomMetadata
from realtime_chat.services.identity import IdentityResolver, JWKSCache, TokenVerifier
from realtime_chat.websockets.session import Session, SessionController

TEST_ISSUER = "https://cognito-idp.us-west-2.amazonaws.com/us-west-2_TEST"
TEST_KID = "test-kid"


# =============================================================================
# Durable store double
# =============================================================================

class FakeGateway:
    """In-memory stand-in for PersistenceGateway"""

    def __init__(self, metadata: Optional[Dict[str, RoomMetadata]] = None, available: bool = True):
        self.metadata = metadata or {}
        self.messages: List[ChatMessage] = []
        self.available = available
        self.metadata_calls: List[str] = []
        self.fail_history = False
        self.fail_save = False
        self.metadata_gate: Optional[asyncio.Event] = None
        self.save_gate: Optional[asyncio.Event] = None
        self.history_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def initialize(self) -> bool:
        return self.available

    async def close(self):
        self.closed = True

    def is_available(self) -> bool:
        return self.available

    async def get_room_metadata(self, room_id: str) -> Optional[RoomMetadata]:
        self.metadata_calls.append(room_id)
        if self.metadata_gate is not None:
            await self.metadata_gate.wait()
        return self.metadata.get(room_id)

    async def get_all_room_metadata(self) -> List[RoomMetadata]:
        return list(self.metadata.values())

    async def save_message(self, message: ChatMessage) -> bool:
        if self.save_gate is not None:
            await self.save_gate.wait()
        if self.fail_save:
            raise RuntimeError("store write failed")
        self.messages.append(message)
        return True

    async def get_recent_messages(self, room_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.fail_history:
            raise RuntimeError("history unavailable")
        return [m for m in self.messages if m.room_id == room_id][-(limit or 50):]


def drain(outbox: asyncio.Queue) -> List[dict]:
    """Frames queued for a connection so far."""
    frames = []
    while True:
        try:
            frame = outbox.get_nowait()
        except asyncio.QueueEmpty:
            break
        if frame is not None:
            frames.append(frame)
    return frames


def events_of(frames: List[dict]) -> List[str]:
    return [frame["event"] for frame in frames]


def connect(chat, user_id: str, is_guest: bool = True, connection_id: Optional[str] = None):
    """Register a connection and return its controller and outbox."""
    connection_id = connection_id or f"conn-{user_id}"
    outbox = chat.connections.register(connection_id, user_id)
    session = Session(connection_id=connection_id, user_id=user_id, is_guest=is_guest)
    return SessionController(session, chat), outbox


def assert_registry_consistent(chat, controllers):
    """Registry rooms are non-empty and every session's room lists its user."""
    for room in chat.registry.get_all_rooms():
        assert chat.registry.member_count(room.room_id) == len(chat.registry.members_of(room.room_id)) > 0
    for controller in controllers:
        room_id = controller.session.current_room_id
        if room_id is not None:
            assert chat.registry.is_member(room_id, controller.session.user_id)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def chat(gateway):
    return build_chat_context(gateway)


@pytest.fixture(scope="session")
def rsa_keys():
    """RSA key pair and the matching public JWK"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk["kid"] = TEST_KID
    public_jwk["use"] = "sig"
    return {"private_pem": private_pem, "jwk": public_jwk}


@pytest.fixture
def make_token(rsa_keys):
    def _make_token(sub: str = "user-123", email: str = "user@example.com", kid: str = TEST_KID,
                    issuer: str = TEST_ISSUER, expires_in: int = 3600, **claims) -> str:
        payload = {
            "sub": sub,
            "email": email,
            "iss": issuer,
            "iat": int(time.time()),
            "exp": int(time.time()) + expires_in,
            "token_use": "id",
            **claims,
        }
        return jwt.encode(payload, rsa_keys["private_pem"], algorithm="RS256", headers={"kid": kid})
    return _make_token


@pytest.fixture
def jwks_fetcher(rsa_keys):
    calls = []

    async def fetch():
        calls.append(time.monotonic())
        return {"keys": [rsa_keys["jwk"]]}

    fetch.calls = calls
    return fetch


@pytest.fixture
def make_resolver(jwks_fetcher):
    def _make_resolver(policy: AuthPolicy = AuthPolicy.PERMISSIVE, audience: Optional[str] = None) -> IdentityResolver:
        jwks = JWKSCache("https://keys.test/jwks.json", cache_seconds=3600, fetcher=jwks_fetcher)
        verifier = TokenVerifier(jwks, issuer=TEST_ISSUER, audience=audience)
        return IdentityResolver(verifier, policy)
    return _make_resolver


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        mongo_url=None,
        debug=True,
        auth_mode=AuthPolicy.PERMISSIVE,
        cognito_user_pool_id="us-west-2_TEST",
        cognito_region="us-west-2",
    )


@pytest.fixture
def app_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(test_settings, app_gateway, make_resolver):
    app = create_app(test_settings, gateway=app_gateway, identity_resolver=make_resolver(test_settings.auth_mode))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def enforced_client(test_settings, app_gateway, make_resolver):
    config = test_settings.model_copy(update={"auth_mode": AuthPolicy.ENFORCED})
    app = create_app(config, gateway=app_gateway, identity_resolver=make_resolver(AuthPolicy.ENFORCED))
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def joined_pair(chat):
    """A and B both in "general"; outboxes drained."""
    a, a_out = connect(chat, "alice")
    b, b_out = connect(chat, "bob")
    await a.join("general")
    await b.join("general")
    await a.settle()
    await b.settle()
    drain(a_out)
    drain(b_out)
    return a, a_out, b, b_out
