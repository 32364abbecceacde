from .room_metadata import RoomMetadataDocument
from .messages import MessageDocument

DOCUMENT_MODELS = [
    RoomMetadataDocument,
    MessageDocument,
]

__all__ = [
    "RoomMetadataDocument",
    "MessageDocument",
    "DOCUMENT_MODELS",
]
