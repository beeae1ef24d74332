"""duochat - two-party chat rooms over a document store with live change feeds."""

__version__ = "0.1.0"

from duochat.chat import ChatMessage, ChatRoom, create_room, join_room
from duochat.config.schema import Config
from duochat.context import ChatContext, initialize
from duochat.errors import (
    AlreadyRemovedError,
    ChatError,
    ConflictError,
    InitializeError,
    NotFoundError,
    PartialFailureError,
    PrivateRoomError,
    StoreError,
    ValidationError,
)
from duochat.models import Member, Message, Room, RoomState

__all__ = [
    "__version__",
    "initialize",
    "ChatContext",
    "Config",
    "create_room",
    "join_room",
    "ChatRoom",
    "ChatMessage",
    "Member",
    "Message",
    "Room",
    "RoomState",
    "ChatError",
    "InitializeError",
    "ValidationError",
    "NotFoundError",
    "AlreadyRemovedError",
    "PrivateRoomError",
    "StoreError",
    "ConflictError",
    "PartialFailureError",
]
