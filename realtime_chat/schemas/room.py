from typing import List, Optional
from pydantic import Field

from .base import CamelModel


class Member(CamelModel):
    """A connection's visible occupancy of a room"""
    user_id: str = Field(..., description="Member user ID")
    display_name: str = Field(..., description="Name shown to other members")
    is_guest: bool = Field(..., description="Unauthenticated participant")


class RoomUsers(CamelModel):
    """room:users payload, sent to the joiner"""
    room_id: str
    users: List[Member]
    user_count: int


class PresenceNotice(CamelModel):
    """room:user-joined / room:user-left / typing payload"""
    user_id: str
    display_name: str
    user_count: int


class RoomSummary(CamelModel):
    """Active room listing entry"""
    room_id: str
    name: str
    user_count: int
    created_at: int = Field(..., description="Creation time, ms epoch")
    allowed_groups: Optional[List[str]] = None


class RoomMetadata(CamelModel):
    """Durable, read-mostly room description"""
    room_id: str
    name: Optional[str] = None
    created_at: Optional[int] = Field(None, description="Creation time, ms epoch")
    allowed_groups: Optional[List[str]] = None
