"""Public chat API.

``ChatRoom`` and ``ChatMessage`` wrap model snapshots together with the
context they were loaded from, so callers can write ``await room.send_message(...)``
without threading the components around themselves.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from duochat.context import ChatContext
from duochat.models.message import Message
from duochat.models.room import Member, Room, RoomState
from duochat.rooms.messages import MessageSubscription


class ChatMessage:
    """A sent message bound to its context."""

    def __init__(self, ctx: ChatContext, message: Message):
        self.ctx = ctx
        self.message = message

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def room_id(self) -> str:
        return self.message.room_id

    @property
    def body(self) -> str:
        return self.message.body

    @property
    def sender(self) -> str:
        return self.message.sender

    @property
    def created_at(self) -> datetime:
        return self.message.created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.message.updated_at

    async def update_body(self, body: Any) -> "ChatMessage":
        """Edit the message text."""
        self.message = await self.ctx.messages.update(self.room_id, self.id, body)
        return self

    async def remove(self) -> "ChatMessage":
        await self.ctx.messages.remove(self.room_id, self.id)
        return self

    def __repr__(self) -> str:
        return f"ChatMessage(id={self.id!r}, room_id={self.room_id!r}, sender={self.sender!r})"


class ChatRoom:
    """A two-party chat room bound to its context."""

    def __init__(self, ctx: ChatContext, room: Room):
        self.ctx = ctx
        self.room = room

    @property
    def id(self) -> str:
        return self.room.id

    @property
    def title(self) -> str:
        return self.room.title

    @property
    def members(self) -> List[Member]:
        return self.room.members

    @property
    def created_at(self) -> datetime:
        return self.room.created_at

    @property
    def is_open(self) -> bool:
        return self.room.is_open

    @property
    def is_removed(self) -> bool:
        return self.room.is_removed

    @property
    def state(self) -> RoomState:
        return self.room.state

    async def refresh(self) -> "ChatRoom":
        """Reload the snapshot from the store."""
        self.room = await self.ctx.rooms.find_by_id(self.id)
        return self

    async def set_title(self, title: Any) -> str:
        """Change the title; returns the new title."""
        self.room.title = await self.ctx.rooms.set_title(self.id, title)
        return self.room.title

    async def remove(self, soft: bool = False) -> "ChatRoom":
        await self.ctx.rooms.remove(self.id, soft=soft)
        if soft:
            self.room.is_removed = True
        return self

    async def send_message(self, body: Any, sender: Any) -> ChatMessage:
        message = await self.ctx.messages.send(self.room, body, sender)
        return ChatMessage(self.ctx, message)

    async def listen_for_messages(self, callback: Any) -> MessageSubscription:
        """Call ``callback(ChatMessage)`` for every message of this room.

        Already stored messages are delivered first. Cancel the returned
        subscription to stop listening.
        """
        ctx = self.ctx

        def deliver(message: Message) -> Any:
            return callback(ChatMessage(ctx, message))

        return await ctx.messages.subscribe_new(self.room, deliver)

    @classmethod
    async def find_by_id(cls, ctx: ChatContext, room_id: str) -> "ChatRoom":
        return cls(ctx, await ctx.rooms.find_by_id(room_id))

    @classmethod
    async def list_for_user(cls, ctx: ChatContext, user: Any) -> List["ChatRoom"]:
        return [cls(ctx, room) for room in await ctx.rooms.list_for_user(user)]

    @staticmethod
    async def remove_mutual_rooms(ctx: ChatContext, user_a: Any, user_b: Any, soft: bool = False) -> List[str]:
        return await ctx.reconciler.remove_mutual(user_a, user_b, soft=soft)

    def __repr__(self) -> str:
        return f"ChatRoom(id={self.id!r}, title={self.title!r}, state={self.state.value})"


async def create_room(ctx: ChatContext, title: Any, members: Any) -> ChatRoom:
    """Create a room open for one more member."""
    return ChatRoom(ctx, await ctx.rooms.create(title, members))


async def join_room(ctx: ChatContext, room_id: str, member: Any) -> ChatRoom:
    """Join an open room as its second member."""
    return ChatRoom(ctx, await ctx.rooms.join(room_id, member))
