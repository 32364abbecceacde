"""
Realtime Chat - FastAPI Application

Room-based realtime messaging over WebSocket: identity at handshake, room
membership and presence, message broadcast with best-effort persistence.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from realtime_chat import api
from realtime_chat.api import include_routers
from realtime_chat.core.config import Settings, settings as default_settings
from realtime_chat.core.errors import BaseCustomException
from realtime_chat.core.logging import get_logger, setup_logging
from realtime_chat.services.identity import IdentityResolver, build_identity_resolver
from realtime_chat.services.message_pipeline import MessagePipeline
from realtime_chat.services.persistence import PersistenceGateway
from realtime_chat.services.presence import PresenceBroadcaster
from realtime_chat.services.room_registry import RoomRegistry
from realtime_chat.websockets.connection_manager import ConnectionManager
from realtime_chat.websockets.session import ChatContext

logger = get_logger(__name__)

PERSISTENCE_DRAIN_TIMEOUT = 5.0


def build_chat_context(gateway: Optional[PersistenceGateway] = None) -> ChatContext:
    registry = RoomRegistry(gateway)
    connections = ConnectionManager()
    return ChatContext(
        registry=registry,
        connections=connections,
        presence=PresenceBroadcaster(registry, connections),
        pipeline=MessagePipeline(connections, gateway),
        gateway=gateway,
    )


def create_app(
    config: Optional[Settings] = None,
    gateway: Optional[PersistenceGateway] = None,
    identity_resolver: Optional[IdentityResolver] = None,
) -> FastAPI:
    config = config or default_settings
    setup_logging(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"{config.app_name} starting up...")
        store = gateway or PersistenceGateway(config)
        await store.initialize()

        app.state.settings = config
        app.state.chat = build_chat_context(store)
        app.state.identity_resolver = identity_resolver or build_identity_resolver(config)

        yield

        # Shutdown
        logger.info(f"{config.app_name} shutting down...")
        await app.state.chat.pipeline.drain(timeout=PERSISTENCE_DRAIN_TIMEOUT)
        app.state.chat.registry.clear()
        await store.close()

    app = FastAPI(
        title=config.app_name,
        version=config.version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BaseCustomException)
    async def custom_exception_handler(request: Request, exc: BaseCustomException):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    include_routers(app, "api", api.__path__)

    # Metrics registry is per app instance
    Instrumentator(registry=CollectorRegistry()).instrument(app).expose(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "realtime_chat.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
