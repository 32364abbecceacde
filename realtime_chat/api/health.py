from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from realtime_chat.api.dependencies import get_chat_context, get_settings
from realtime_chat.core.config import Settings
from realtime_chat.websockets.session import ChatContext

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Liveness probe"""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    context: ChatContext = Depends(get_chat_context),
    settings: Settings = Depends(get_settings),
):
    """
    Readiness probe. The service is ready without the durable store; its
    state is reported so operators can see the in-memory-only mode.
    """
    try:
        store_available = context.gateway is not None and context.gateway.is_available()
        return {
            "status": "ready",
            "timestamp": datetime.utcnow(),
            "persistence": "available" if store_available else "in-memory",
            "active_rooms": len(context.registry.get_all_rooms()),
            "service": settings.app_name,
        }
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Readiness check failed: {str(e)}")
