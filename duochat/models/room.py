"""Room data model for two-party chat."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List

from duochat.errors import ValidationError
from duochat.store.base import Document
from duochat.utils.timestamps import from_millis, now, to_millis
from duochat.utils.validation import optional_text, require_text


class RoomState(Enum):
    """Lifecycle states of a room.

    A freshly created room is OPEN until its second member joins.
    """

    OPEN = "open"  # accepts one join
    CLOSED = "closed"  # both members present, private
    REMOVED = "removed"  # terminal


@dataclass
class Member:
    """A participant identity attached to a room."""

    user_id: str
    username: str = ""
    photo: str = ""

    @classmethod
    def parse(cls, value: Any) -> "Member":
        """Validate a member given as a Member, a mapping or a bare user id.

        Mappings may use ``userId`` or ``user_id``; ``username`` and
        ``photo`` default to "".

        Raises:
            ValidationError: on a missing/empty user id or non-string fields
        """
        if isinstance(value, Member):
            user_id, username, photo = value.user_id, value.username, value.photo
        elif isinstance(value, str):
            user_id, username, photo = value, "", ""
        elif isinstance(value, dict):
            user_id = value.get("userId", value.get("user_id"))
            username = value.get("username")
            photo = value.get("photo")
        else:
            raise ValidationError(
                "Members must be objects like {userId, username if any, photo if any}"
            )

        return cls(
            user_id=require_text(
                user_id,
                "Users must be a string and not empty, member keys must be "
                "{userId, username if any, photo if any}",
            ),
            username=optional_text(username, "User names should be strings"),
            photo=optional_text(photo, "Photos should be strings"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"userId": self.user_id, "username": self.username, "photo": self.photo}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            user_id=data.get("userId", ""),
            username=data.get("username") or "",
            photo=data.get("photo") or "",
        )


@dataclass
class Room:
    """Snapshot of a room document."""

    id: str
    title: str
    members: List[Member] = field(default_factory=list)
    created_at: datetime = field(default_factory=now)
    is_open: bool = True
    is_removed: bool = False

    @classmethod
    def new(cls, room_id: str, title: str, members: Iterable[Member]) -> "Room":
        """Construct a not-yet-joined room from caller-supplied fields."""
        return cls(
            id=room_id,
            title=title,
            members=list(members),
            created_at=now(),
            is_open=True,
            is_removed=False,
        )

    @classmethod
    def from_document(cls, doc: Document) -> "Room":
        """Construct a room from its stored document."""
        data = doc.data
        return cls(
            id=doc.id,
            title=data.get("title", ""),
            members=[Member.from_dict(m) for m in data.get("members", []) or []],
            created_at=from_millis(data.get("createdAt")) or now(),
            is_open=bool(data.get("isOpen", False)),
            is_removed=bool(data.get("isRemoved", False)),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "members": [m.to_dict() for m in self.members],
            "createdAt": to_millis(self.created_at),
            "isOpen": self.is_open,
            "isRemoved": self.is_removed,
        }

    @property
    def state(self) -> RoomState:
        if self.is_removed:
            return RoomState.REMOVED
        if self.is_open:
            return RoomState.OPEN
        return RoomState.CLOSED

    @property
    def pair(self) -> List[Member]:
        """The two members a conversation is held between (fewer if unjoined)."""
        return self.members[:2]

    @property
    def member_ids(self) -> List[str]:
        return [m.user_id for m in self.members]

    def has_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.pair)

    def projected(self) -> "Room":
        """Copy of this room restricted to its conversation pair."""
        return replace(self, members=list(self.pair))


def validate_title(title: Any) -> str:
    return require_text(title, "title should be not empty and be string")


def validate_members(members: Any) -> List[Member]:
    """Validate every member of a creation request."""
    if isinstance(members, (str, bytes, dict)) or not isinstance(members, Iterable):
        raise ValidationError("members should be a list of member objects")
    return [Member.parse(m) for m in members]
