"""
Connection identity

Turns the credential presented at handshake into a session identity:
either the verified subject of a Cognito-issued RS256 JWT, or a generated
guest id. Whether an unverifiable credential rejects the connection or
downgrades it to guest is decided by the AuthPolicy alone.
"""

import asyncio
import secrets
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from jose import JWTError, jwt

from realtime_chat.core.config import AuthPolicy, Settings
from realtime_chat.core.errors import IdentityFailure
from realtime_chat.core.logging import get_logger, log_authentication_event

logger = get_logger(__name__)

JWKSFetcher = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class Identity:
    user_id: str
    is_guest: bool
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        # No profile source: the raw id is what other members see.
        return self.user_id


def generate_guest_id() -> str:
    return f"guest_{secrets.token_hex(8)}"


def guest_identity() -> Identity:
    return Identity(user_id=generate_guest_id(), is_guest=True)


class JWKSCache:
    """Public signing keys, refetched at most once per cache interval."""

    def __init__(
        self,
        url: str,
        cache_seconds: int = 3600,
        timeout: float = 5.0,
        fetcher: Optional[JWKSFetcher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._fetcher = fetcher or self._fetch
        self._clock = clock
        self._keys: Optional[List[Dict[str, Any]]] = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._keys is not None and (self._clock() - self._fetched_at) < self.cache_seconds

    async def _fetch(self) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.json()

    async def get_keys(self) -> List[Dict[str, Any]]:
        if self._is_fresh():
            return self._keys

        async with self._lock:
            if self._is_fresh():
                return self._keys
            try:
                document = await self._fetcher()
                keys = document["keys"]
            except Exception as e:
                logger.error(f"Failed to fetch signing keys from {self.url}: {e}")
                raise IdentityFailure(f"Unable to fetch signing keys: {e}") from e
            self._keys = list(keys)
            self._fetched_at = self._clock()
            logger.info(f"Fetched {len(self._keys)} signing key(s)")
            return self._keys

    async def get_key(self, kid: Optional[str]) -> Dict[str, Any]:
        for key in await self.get_keys():
            if key.get("kid") == kid:
                return key
        raise IdentityFailure("Key not found in signing key set")


class TokenVerifier:
    """Signature, issuer and (optionally) audience check of an RS256 JWT."""

    algorithms = ["RS256"]

    def __init__(self, jwks: JWKSCache, issuer: Optional[str] = None, audience: Optional[str] = None):
        self.jwks = jwks
        self.issuer = issuer
        self.audience = audience

    async def verify(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise IdentityFailure("Invalid token format") from e

        key = await self.jwks.get_key(header.get("kid"))

        try:
            return jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            raise IdentityFailure(f"Token verification failed: {e}") from e


class IdentityResolver:
    """Resolves a handshake credential to an Identity under an AuthPolicy."""

    def __init__(self, verifier: Optional[TokenVerifier], policy: AuthPolicy = AuthPolicy.PERMISSIVE):
        self.verifier = verifier
        self.policy = policy

    @property
    def enforcing(self) -> bool:
        return self.policy is AuthPolicy.ENFORCED

    async def resolve(self, credential: Optional[str]) -> Identity:
        """
        Args:
            credential: bearer token without the "Bearer " prefix, or None

        Returns:
            Identity: verified user, or a fresh guest

        Raises:
            IdentityFailure: only under the enforced policy
        """
        if not credential:
            if self.enforcing:
                log_authentication_event(logger, "handshake", success=False, reason="missing credential")
                raise IdentityFailure("Missing credential")
            identity = guest_identity()
            logger.info(f"Guest connected: {identity.user_id}")
            return identity

        try:
            claims = await self._verify(credential)
        except IdentityFailure as e:
            log_authentication_event(logger, "handshake", success=False, reason=e.reason)
            if self.enforcing:
                raise
            identity = guest_identity()
            logger.info(f"Credential rejected, continuing as guest {identity.user_id}")
            return identity

        identity = Identity(user_id=claims["sub"], is_guest=False, email=claims.get("email"))
        log_authentication_event(logger, "handshake", user_id=identity.user_id, email=identity.email)
        return identity

    async def _verify(self, credential: str) -> Dict[str, Any]:
        if self.verifier is None:
            raise IdentityFailure("Token verification is not configured")
        claims = await self.verifier.verify(credential)
        if not claims.get("sub"):
            raise IdentityFailure("Token missing subject")
        return claims


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def build_identity_resolver(config: Settings, fetcher: Optional[JWKSFetcher] = None) -> IdentityResolver:
    verifier = None
    jwks_url = config.resolved_jwks_url
    if jwks_url:
        jwks = JWKSCache(
            jwks_url,
            cache_seconds=config.jwks_cache_seconds,
            timeout=config.jwks_fetch_timeout,
            fetcher=fetcher,
        )
        verifier = TokenVerifier(jwks, issuer=config.token_issuer, audience=config.cognito_app_client_id)
    else:
        logger.warning("No signing key set configured; bearer tokens cannot be verified")
    return IdentityResolver(verifier, config.auth_mode)
