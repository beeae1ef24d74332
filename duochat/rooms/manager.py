"""Room lifecycle: create, join, retitle, remove, lookup.

State transitions are guarded with conditioned updates so that a room is
claimed by at most one joining member even when joins race.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from loguru import logger

from duochat.config.schema import CollectionsConfig
from duochat.errors import (
    AlreadyRemovedError,
    ConflictError,
    NotFoundError,
    PartialFailureError,
    PrivateRoomError,
    ValidationError,
)
from duochat.models.room import Member, Room, validate_members, validate_title
from duochat.rooms.fanout import gather_settled
from duochat.rooms.index import RoomIndex
from duochat.rooms.messages import messages_collection
from duochat.store.base import DocumentStore
from duochat.utils.ids import new_document_id, resolve_user_id
from duochat.utils.validation import require_text


class RoomManager:
    """Owns the ``ChatRooms`` collection and keeps the room index in step with it."""

    def __init__(
        self,
        store: DocumentStore,
        index: RoomIndex,
        collections: Optional[CollectionsConfig] = None,
        prune_index_on_remove: bool = True,
    ):
        self.store = store
        self.index = index
        self.collections = collections or CollectionsConfig()
        self.collection = self.collections.rooms
        self.prune_index_on_remove = prune_index_on_remove

    async def _load(self, room_id: str) -> Room:
        doc = await self.store.get(self.collection, room_id)
        if doc is None:
            raise NotFoundError(f"Chat room {room_id} doesn't exist")
        return Room.from_document(doc)

    @staticmethod
    def _check_joinable(room: Room, member: Member) -> None:
        # Removal is checked before privacy
        if room.is_removed:
            raise AlreadyRemovedError(f"Chat room {room.id} was already removed")
        if not room.is_open or len(room.members) >= 2:
            raise PrivateRoomError(f"Chat room {room.id} is private")
        if member.user_id in room.member_ids:
            raise ValidationError(f"User {member.user_id} is already in chat room {room.id}")

    async def create(self, title: Any, members: Any) -> Room:
        """Create an open room and index it for every member.

        Raises:
            ValidationError: invalid title or member; nothing is written
        """
        title = validate_title(title)
        parsed = validate_members(members)

        room = Room.new(new_document_id(), title, parsed)
        await self.store.set(self.collection, room.to_document(), key=room.id)
        await asyncio.gather(*(self.index.record_membership(m.user_id, room.id) for m in parsed))

        logger.info(f"Created chat room '{title}' ({room.id}) with {len(parsed)} member(s)")
        return room

    async def join(self, room_id: str, member: Any) -> Room:
        """Claim an open room as its second member.

        Raises:
            NotFoundError: no such room
            AlreadyRemovedError: the room was soft-removed
            PrivateRoomError: the room is closed or already holds two members,
                including when a concurrent join won the race
        """
        require_text(room_id, "room id should be a non-empty string")
        new_member = Member.parse(member)

        room = await self._load(room_id)
        self._check_joinable(room, new_member)

        members = room.members + [new_member]
        try:
            await self.store.update(
                self.collection,
                room_id,
                {"members": [m.to_dict() for m in members], "isOpen": False},
                expected={
                    "isOpen": True,
                    "isRemoved": False,
                    "members": [m.to_dict() for m in room.members],
                },
            )
        except ConflictError:
            latest = await self._load(room_id)
            logger.warning(f"Join of {new_member.user_id} lost the race on room {room_id}")
            self._check_joinable(latest, new_member)
            raise

        await self.index.record_membership(new_member.user_id, room_id)

        room.members = members
        room.is_open = False
        logger.info(f"User {new_member.user_id} joined chat room {room_id}")
        return room

    async def set_title(self, room_id: str, title: Any) -> str:
        """Change a room's title. Returns the new title.

        Raises:
            NotFoundError: no such room
            AlreadyRemovedError: the room was soft-removed
            ConflictError: the store kept losing to concurrent writers
        """
        title = validate_title(title)
        require_text(room_id, "room id should be a non-empty string")
        try:
            await self.store.update(
                self.collection, room_id, {"title": title}, expected={"isRemoved": False}
            )
        except ConflictError as e:
            if e.actual.get("isRemoved"):
                raise AlreadyRemovedError(f"Chat room {room_id} was already removed") from None
            raise
        logger.info(f"Chat room {room_id} renamed to '{title}'")
        return title

    async def remove(self, room_id: str, soft: bool = False) -> None:
        """Remove a room.

        Soft removal flags the document and keeps it; repeating it is a
        no-op. Hard removal deletes the document together with its messages
        and, when pruning is on, its members' index entries. Hard-removing a
        room that does not exist is not an error.
        """
        require_text(room_id, "room id should be a non-empty string")
        if soft:
            await self.store.update(self.collection, room_id, {"isRemoved": True})
            logger.info(f"Chat room {room_id} soft-removed")
            return

        doc = await self.store.get(self.collection, room_id)
        if doc is None:
            logger.debug(f"Chat room {room_id} already gone")
            return
        room = Room.from_document(doc)

        messages = messages_collection(self.collections, room_id)
        for key in await self.store.list_keys(messages):
            await self.store.delete(messages, key)
        await self.store.delete(self.collection, room_id)

        if self.prune_index_on_remove:
            await asyncio.gather(
                *(self.index.retract_membership(uid, room_id) for uid in dict.fromkeys(room.member_ids))
            )
        logger.info(f"Chat room {room_id} removed")

    async def find_by_id(self, room_id: str) -> Room:
        """Load a room projected to its conversation pair.

        Raises:
            NotFoundError: no such room
        """
        require_text(room_id, "room id should be a non-empty string")
        return (await self._load(room_id)).projected()

    async def list_for_user(self, user: Any) -> List[Room]:
        """Load every room a user belongs to.

        Index entries whose room no longer exists are skipped. All rooms
        are fetched concurrently and the call returns once every fetch
        settled.

        Raises:
            NotFoundError: the user has no index record
            PartialFailureError: some fetches failed; ``completed`` holds the
                rooms that loaded
        """
        user_id = resolve_user_id(user)
        room_ids = await self.index.list_memberships(user_id)

        loaded, failures = await gather_settled(
            room_ids, lambda rid: self.store.get(self.collection, rid)
        )

        rooms = []
        for room_id, doc in loaded:
            if doc is None:
                logger.debug(f"Skipping dangling index entry {room_id} for user {user_id}")
                continue
            rooms.append(Room.from_document(doc).projected())

        if failures:
            for room_id, error in failures.items():
                logger.warning(f"Failed to load chat room {room_id} for user {user_id}: {error}")
            raise PartialFailureError(
                f"{len(failures)} of {len(room_ids)} chat rooms could not be loaded",
                completed=rooms,
                failures=failures,
            )
        return rooms
