from typing import Any, Optional
from pydantic import BaseModel, Field


class Frame(BaseModel):
    """JSON envelope carried by every WebSocket frame in both directions"""
    event: str = Field(..., min_length=1, description="Event name, e.g. room:join")
    data: Any = Field(None, description="Event payload")
    ack: Optional[int] = Field(None, description="Acknowledgement id requested by the client")

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)
