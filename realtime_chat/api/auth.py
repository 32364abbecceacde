from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from realtime_chat.api.dependencies import get_optional_identity, get_settings
from realtime_chat.core.config import Settings
from realtime_chat.core.errors import ServiceUnavailableException
from realtime_chat.services.identity import Identity

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _hosted_ui(settings: Settings) -> str:
    if not settings.cognito_domain or not settings.cognito_app_client_id:
        raise ServiceUnavailableException("Authentication provider", "not configured")
    domain = settings.cognito_domain.rstrip("/")
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    return domain


@router.get("/me")
async def read_me(identity: Optional[Identity] = Depends(get_optional_identity)):
    """Identity introspection for the bearer token on the request."""
    if identity is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "userId": identity.user_id,
        "email": identity.email,
    }


@router.get("/login")
async def login(settings: Settings = Depends(get_settings)):
    """Redirect to the hosted sign-in page."""
    domain = _hosted_ui(settings)
    query = {
        "client_id": settings.cognito_app_client_id,
        "response_type": "code",
        "scope": "openid email",
    }
    if settings.login_redirect_uri:
        query["redirect_uri"] = settings.login_redirect_uri
    return RedirectResponse(f"{domain}/login?{urlencode(query)}", status_code=302)


@router.get("/logout")
async def logout(settings: Settings = Depends(get_settings)):
    """Redirect to the hosted sign-out endpoint."""
    domain = _hosted_ui(settings)
    query = {"client_id": settings.cognito_app_client_id}
    if settings.logout_redirect_uri:
        query["logout_uri"] = settings.logout_redirect_uri
    return RedirectResponse(f"{domain}/logout?{urlencode(query)}", status_code=302)
