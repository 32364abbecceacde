"""
API Dependencies

Accessors for the collaborators built at startup, and HTTP authentication.
"""

from typing import Optional

from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from realtime_chat.core.config import Settings
from realtime_chat.core.errors import AuthenticationException, IdentityFailure
from realtime_chat.services.identity import Identity, IdentityResolver
from realtime_chat.websockets.session import ChatContext

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_chat_context(request: Request) -> ChatContext:
    return request.app.state.chat


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity_resolver


def get_ws_chat_context(websocket: WebSocket) -> ChatContext:
    return websocket.app.state.chat


def get_ws_identity_resolver(websocket: WebSocket) -> IdentityResolver:
    return websocket.app.state.identity_resolver


async def get_optional_identity(
    resolver: IdentityResolver = Depends(get_identity_resolver),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Identity]:
    """
    Authenticated identity of an HTTP request.

    Returns:
        Identity: the verified user, or None when unauthenticated under the
        permissive policy

    Raises:
        AuthenticationException: missing or invalid token under the enforced policy
    """
    token = credentials.credentials if credentials else None
    if not token:
        if resolver.enforcing:
            raise AuthenticationException("Unauthorized: Missing or invalid Authorization header")
        return None

    try:
        identity = await resolver.resolve(token)
    except IdentityFailure as e:
        raise AuthenticationException(f"Unauthorized: {e.reason}")

    return None if identity.is_guest else identity
