"""Data models for duochat."""

from duochat.models.message import Message
from duochat.models.room import Member, Room, RoomState

__all__ = ["Member", "Message", "Room", "RoomState"]
