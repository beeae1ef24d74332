"""Message data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from duochat.errors import ValidationError
from duochat.models.room import Room
from duochat.store.base import Document
from duochat.utils.ids import resolve_user_id
from duochat.utils.timestamps import from_millis, now, to_millis
from duochat.utils.validation import require_text


@dataclass
class Message:
    """A timestamped text entry scoped to one room."""

    id: str
    room_id: str
    body: str
    sender: str  # user id, persisted as "from"
    created_at: datetime = field(default_factory=now)
    updated_at: Optional[datetime] = None

    @classmethod
    def new(cls, message_id: str, room_id: str, body: str, sender: str) -> "Message":
        """Construct an unsent message from caller-supplied fields."""
        return cls(id=message_id, room_id=room_id, body=body, sender=sender, created_at=now())

    @classmethod
    def from_document(cls, room_id: str, doc: Document) -> "Message":
        """Construct a message from its stored document."""
        data = doc.data
        return cls(
            id=doc.id,
            room_id=room_id,
            body=data.get("body", ""),
            sender=data.get("from", ""),
            created_at=from_millis(data.get("createdAt")) or now(),
            updated_at=from_millis(data.get("updatedAt")),
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "body": self.body,
            "from": self.sender,
            "createdAt": to_millis(self.created_at),
        }
        if self.updated_at is not None:
            doc["updatedAt"] = to_millis(self.updated_at)
        return doc


def validate_body(body: Any) -> str:
    return require_text(body, "Message should have body and be string")


def resolve_sender(sender: Any, room: Room) -> str:
    """Return the sender's user id if it is one of the room's two members.

    Raises:
        ValidationError: if ``sender`` is empty or not a member of ``room``
    """
    if not isinstance(room, Room):
        raise ValidationError("room should be a Room")
    if sender is None or sender == "" or sender == {}:
        raise ValidationError("From should be not empty")
    user_id = resolve_user_id(sender, "from user")
    if not room.has_member(user_id):
        raise ValidationError("'from' user must be in this chat room")
    return user_id
