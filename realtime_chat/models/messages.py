from datetime import datetime
from typing import Optional
from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from realtime_chat.schemas.message import ChatMessage


class MessageDocument(Document):
    room_id: str = Field(..., description="Room ID where message was sent")
    timestamp: int = Field(..., description="Send time, ms epoch")
    user_id: str = Field(..., description="User ID who sent the message")
    display_name: str = Field(..., description="Sender display name at send time")
    content: str = Field(..., description="Message content")
    ttl: Optional[int] = Field(None, description="Expiry, epoch seconds")
    expires_at: Optional[datetime] = Field(None, description="Expiry used by the TTL index")

    class Settings:
        name = "messages"
        indexes = [
            [("room_id", ASCENDING), ("timestamp", DESCENDING)],  # room history, newest first
            IndexModel([("expires_at", ASCENDING)], expireAfterSeconds=0),
        ]

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageDocument":
        return cls(
            room_id=message.room_id,
            timestamp=message.timestamp,
            user_id=message.user_id,
            display_name=message.display_name,
            content=message.content,
            ttl=message.ttl,
            expires_at=datetime.utcfromtimestamp(message.ttl) if message.ttl else None,
        )

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            room_id=self.room_id,
            timestamp=self.timestamp,
            user_id=self.user_id,
            display_name=self.display_name,
            content=self.content,
            ttl=self.ttl,
        )

    def __repr__(self):
        return f"<MessageDocument(room_id={self.room_id}, user_id={self.user_id}, timestamp={self.timestamp})>"
