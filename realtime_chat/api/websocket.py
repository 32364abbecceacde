import asyncio
import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from realtime_chat.api.dependencies import get_ws_chat_context, get_ws_identity_resolver
from realtime_chat.core.logging import clear_connection_context, log_websocket_event, set_connection_context
from realtime_chat.websockets.auth import authenticate_websocket
from realtime_chat.websockets.handlers import message_handler
from realtime_chat.websockets.session import Session, SessionController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

WRITER_SHUTDOWN_TIMEOUT = 5.0


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Realtime chat connection.

    The credential is read once at handshake (`token` query parameter or
    Authorization header). Each inbound frame is dispatched to completion
    before the next one from this connection is read.
    """
    context = get_ws_chat_context(websocket)
    resolver = get_ws_identity_resolver(websocket)

    # 1. Identity
    identity = await authenticate_websocket(websocket, resolver)
    if identity is None:
        return

    # 2. Session
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    set_connection_context(connection_id, identity.user_id)

    session = Session.from_identity(connection_id, identity)
    controller = SessionController(session, context)
    outbox = context.connections.register(connection_id, identity.user_id)
    writer = asyncio.create_task(context.connections.pump(connection_id, websocket, outbox))
    log_websocket_event(logger, "connect", identity.user_id, is_guest=identity.is_guest)

    # 3. Dispatch loop
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON from user {identity.user_id}: {e}")
                continue

            try:
                await message_handler.handle_message(controller, data)
            except Exception as e:
                logger.error(f"Error processing frame from user {identity.user_id}: {e}", exc_info=True)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {identity.user_id}")

    except Exception as e:
        logger.error(f"Unexpected error in WebSocket connection for user {identity.user_id}: {e}")

    finally:
        # 4. Cleanup runs for abrupt closes too
        controller.disconnect()
        try:
            await asyncio.wait_for(writer, timeout=WRITER_SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            writer.cancel()
        clear_connection_context()
