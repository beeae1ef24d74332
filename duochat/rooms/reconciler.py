"""Removal of every room two users share."""

from typing import Any, List

from loguru import logger

from duochat.errors import NotFoundError, PartialFailureError
from duochat.rooms.fanout import gather_settled
from duochat.rooms.index import RoomIndex
from duochat.rooms.manager import RoomManager
from duochat.utils.ids import resolve_user_id


class MutualRoomReconciler:
    """Finds the rooms two users have in common and removes them."""

    def __init__(self, index: RoomIndex, rooms: RoomManager):
        self.index = index
        self.rooms = rooms

    async def _remove_one(self, room_id: str, soft: bool) -> str:
        try:
            await self.rooms.remove(room_id, soft=soft)
        except NotFoundError:
            # Dangling index entry: the room document is already gone
            logger.debug(f"Mutual room {room_id} no longer exists")
        return room_id

    async def remove_mutual(self, user_a: Any, user_b: Any, soft: bool = False) -> List[str]:
        """Remove (or soft-remove) every room shared by two users.

        Each removal runs independently; all of them complete before this
        returns.

        Returns:
            Ids of the shared rooms that were processed

        Raises:
            NotFoundError: either user has no index record
            PartialFailureError: some removals failed
        """
        user_a = resolve_user_id(user_a)
        user_b = resolve_user_id(user_b)

        rooms_a = await self.index.list_memberships(user_a)
        rooms_b = set(await self.index.list_memberships(user_b))
        shared = [room_id for room_id in rooms_a if room_id in rooms_b]

        if not shared:
            logger.debug(f"Users {user_a} and {user_b} share no chat rooms")
            return []

        done, failures = await gather_settled(shared, lambda rid: self._remove_one(rid, soft))
        removed = [room_id for room_id, _ in done]

        mode = "soft-removed" if soft else "removed"
        logger.info(f"{len(removed)} mutual chat room(s) of {user_a} and {user_b} {mode}")

        if failures:
            for room_id, error in failures.items():
                logger.warning(f"Failed to remove mutual chat room {room_id}: {error}")
            raise PartialFailureError(
                f"{len(failures)} of {len(shared)} mutual chat rooms could not be removed",
                completed=removed,
                failures=failures,
            )
        return removed
