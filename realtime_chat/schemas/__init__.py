from .base import CamelModel
from .envelope import Frame
from .room import Member, RoomUsers, PresenceNotice, RoomSummary, RoomMetadata
from .message import ChatMessage, RoomHistory

__all__ = [
    "CamelModel",
    "Frame",
    "Member",
    "RoomUsers",
    "PresenceNotice",
    "RoomSummary",
    "RoomMetadata",
    "ChatMessage",
    "RoomHistory",
]
