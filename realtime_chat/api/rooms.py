from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from realtime_chat.api.dependencies import get_chat_context
from realtime_chat.schemas.room import RoomMetadata, RoomSummary
from realtime_chat.websockets.session import ChatContext

router = APIRouter(prefix="/rooms", tags=["Rooms"])


class RoomListing(BaseModel):
    active: List[dict] = Field(..., description="Rooms with at least one member on this instance")
    catalog: List[dict] = Field(default_factory=list, description="Stored room metadata")
    persistence_available: bool


@router.get("", response_model=RoomListing)
async def list_rooms(context: ChatContext = Depends(get_chat_context)):
    """Live rooms, plus the stored catalog when the store is reachable."""
    active: List[RoomSummary] = [room.to_summary() for room in context.registry.get_all_rooms()]
    catalog: List[RoomMetadata] = []
    available = context.gateway is not None and context.gateway.is_available()
    if available:
        catalog = await context.gateway.get_all_room_metadata()

    return RoomListing(
        active=[summary.to_wire() for summary in active],
        catalog=[metadata.to_wire() for metadata in catalog],
        persistence_available=available,
    )
