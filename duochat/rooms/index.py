"""Per-user room index.

One document per user in the ``UsersChat`` collection, keyed by user id,
holding ``{roomId: roomId}`` for every room the user belongs to. Lets callers
list a user's rooms without scanning every room.
"""

from typing import List

from loguru import logger

from duochat.errors import NotFoundError
from duochat.store.base import DELETE_FIELD, DocumentStore
from duochat.utils.validation import require_text


class RoomIndex:
    """Reverse lookup from user id to the ids of the rooms they are in."""

    def __init__(self, store: DocumentStore, collection: str = "UsersChat"):
        self.store = store
        self.collection = collection

    async def record_membership(self, user_id: str, room_id: str) -> None:
        """Add ``room_id`` to the user's record, creating the record if needed.

        A single merge-write, so concurrent calls for different rooms of the
        same user never drop each other's keys.
        """
        require_text(user_id, "userId should be a non-empty string")
        require_text(room_id, "room id should be a non-empty string")
        await self.store.set(self.collection, {room_id: room_id}, key=user_id, merge=True)
        logger.debug(f"Indexed room {room_id} for user {user_id}")

    async def list_memberships(self, user_id: str) -> List[str]:
        """Return the room ids recorded for a user.

        Raises:
            NotFoundError: the user has no index record (never chatted). A
                user whose rooms were all retracted gets an empty list.
        """
        require_text(user_id, "userId should be a non-empty string")
        doc = await self.store.get(self.collection, user_id)
        if doc is None:
            raise NotFoundError(f"User {user_id} has no chat rooms")
        return list(doc.data.keys())

    async def retract_membership(self, user_id: str, room_id: str) -> None:
        """Drop ``room_id`` from the user's record. Missing record or key is a no-op."""
        doc = await self.store.get(self.collection, user_id)
        if doc is None or room_id not in doc.data:
            return
        try:
            await self.store.update(self.collection, user_id, {room_id: DELETE_FIELD})
        except NotFoundError:
            return
        logger.debug(f"Retracted room {room_id} from user {user_id}")
