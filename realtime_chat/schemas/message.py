from typing import List, Optional
from pydantic import Field

from .base import CamelModel


class ChatMessage(CamelModel):
    """message:new payload and the unit of persisted history"""
    room_id: str = Field(..., description="Room the message was sent to")
    timestamp: int = Field(..., description="Send time, ms epoch")
    user_id: str = Field(..., description="Sender user ID")
    display_name: str = Field(..., description="Sender display name")
    content: str = Field(..., description="Message text")
    ttl: Optional[int] = Field(None, description="Expiry, epoch seconds (persisted copy)")


class RoomHistory(CamelModel):
    """room:history payload, oldest message first"""
    room_id: str
    messages: List[ChatMessage]
