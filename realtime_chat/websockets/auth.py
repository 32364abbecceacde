from typing import Optional
from fastapi import WebSocket, status
import logging

from realtime_chat.core.errors import IdentityFailure
from realtime_chat.services.identity import Identity, IdentityResolver, extract_bearer_token

logger = logging.getLogger(__name__)


def handshake_credential(websocket: WebSocket) -> Optional[str]:
    """Bearer token from the `token` query parameter or the Authorization header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    return extract_bearer_token(websocket.headers.get("Authorization"))


async def authenticate_websocket(websocket: WebSocket, resolver: IdentityResolver) -> Optional[Identity]:
    """
    Resolve the handshake credential to an identity.

    Args:
        websocket: connection that has not been accepted yet
        resolver: identity resolver carrying the auth policy

    Returns:
        Identity: verified user or guest; None if the connection was rejected
    """
    try:
        return await resolver.resolve(handshake_credential(websocket))
    except IdentityFailure as e:
        logger.warning(f"WebSocket handshake rejected: {e.reason}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
