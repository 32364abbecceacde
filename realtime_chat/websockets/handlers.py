import logging
from typing import Any, Optional

from pydantic import ValidationError

from realtime_chat.schemas.envelope import Frame
from realtime_chat.websockets import events
from realtime_chat.websockets.session import SessionController

logger = logging.getLogger(__name__)


def _room_id_from(data: Any) -> Any:
    """room:join / room:leave accept a bare room id or {"roomId": ...}."""
    if isinstance(data, dict):
        return data.get("roomId")
    return data


def _content_from(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("content")
    return None


class WebSocketMessageHandler:
    """Routes inbound frames to the session controller."""

    @staticmethod
    def parse_frame(data: Any) -> Optional[Frame]:
        if not isinstance(data, dict):
            return None
        try:
            return Frame.model_validate(data)
        except ValidationError:
            return None

    async def handle_message(self, controller: SessionController, data: Any):
        """
        Process one frame received from a client.

        Args:
            controller: the sending connection's session controller
            data: decoded JSON frame
        """
        frame = self.parse_frame(data)
        if frame is None:
            logger.warning(f"Malformed frame from {controller.session.user_id}; ignored")
            return

        event = frame.event

        if event == events.ROOM_JOIN:
            await controller.join(_room_id_from(frame.data), ack=frame.ack)
        elif event == events.ROOM_LEAVE:
            controller.leave(_room_id_from(frame.data))
            controller.acknowledge(frame.ack, {"success": True})
        elif event == events.MESSAGE_SEND:
            controller.send(_content_from(frame.data))
        elif event == events.TYPING_START:
            controller.typing(started=True)
        elif event == events.TYPING_STOP:
            controller.typing(started=False)
        else:
            logger.warning(f"Unknown event type: {event} from user {controller.session.user_id}")


message_handler = WebSocketMessageHandler()
