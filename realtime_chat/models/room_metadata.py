from datetime import datetime
from typing import List, Optional
from beanie import Document, Indexed
from pydantic import Field

from realtime_chat.schemas.room import RoomMetadata


class RoomMetadataDocument(Document):
    room_id: Indexed(str, unique=True) = Field(..., description="Room ID")
    name: Optional[str] = Field(None, description="Display name for the room")
    created_at: Optional[int] = Field(None, description="Creation time, ms epoch")
    allowed_groups: Optional[List[str]] = Field(None, description="Groups allowed into the room")
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "chat_rooms"

    def to_metadata(self) -> RoomMetadata:
        return RoomMetadata(
            room_id=self.room_id,
            name=self.name,
            created_at=self.created_at,
            allowed_groups=self.allowed_groups,
        )

    def __repr__(self):
        return f"<RoomMetadataDocument(room_id={self.room_id}, name={self.name})>"
