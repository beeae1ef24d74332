"""Per-room message log with live delivery.

Messages live in a collection nested under their room document. Each send
writes an independent document under a fresh key, so concurrent sends never
merge. Listeners receive every added message once, in feed order.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, Set, Union

from loguru import logger

from duochat.config.schema import CollectionsConfig
from duochat.errors import NotFoundError
from duochat.models.message import Message, resolve_sender, validate_body
from duochat.models.room import Room
from duochat.store.base import Change, ChangeType, DocumentStore, StoreSubscription, collection_path
from duochat.utils.ids import new_document_id
from duochat.utils.timestamps import now, to_millis
from duochat.utils.validation import require_text

MessageCallback = Callable[[Message], Union[None, Awaitable[None]]]


def messages_collection(collections: CollectionsConfig, room_id: str) -> str:
    """Collection path of a room's messages."""
    return collection_path(collections.rooms, room_id, collections.messages)


class MessageSubscription:
    """
    Live listener on a room's messages.

    Delivers each added message exactly once. Cancel it (or leave its
    ``async with`` block) to release the feed; a subscription that is never
    cancelled keeps its feed task alive until the context closes.
    """

    def __init__(self, room_id: str, on_message: MessageCallback):
        self.room_id = room_id
        self.on_message = on_message
        self.delivered = 0
        self._feed: Optional[StoreSubscription] = None
        self._seen: Set[str] = set()
        self._cancelled = False
        self._on_cancel: Optional[Callable[["MessageSubscription"], None]] = None

    @property
    def active(self) -> bool:
        return not self._cancelled and self._feed is not None and self._feed.active

    async def _handle(self, batch: list[Change]) -> None:
        for change in batch:
            if self._cancelled:
                return
            if change.type is not ChangeType.ADDED or change.document.id in self._seen:
                continue
            self._seen.add(change.document.id)
            message = Message.from_document(self.room_id, change.document)
            try:
                result = self.on_message(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Message listener failed in room {self.room_id} on {message.id}: {e}")
            self.delivered += 1

    async def cancel(self) -> None:
        """Stop delivery. No callback runs after this returns."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._feed is not None:
            await self._feed.cancel()
        if self._on_cancel is not None:
            self._on_cancel(self)
        logger.debug(f"Stopped listening on room {self.room_id} after {self.delivered} message(s)")

    async def __aenter__(self) -> "MessageSubscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cancel()


class MessageLog:
    """Send, edit, remove and listen to the messages of rooms."""

    def __init__(self, store: DocumentStore, collections: Optional[CollectionsConfig] = None):
        self.store = store
        self.collections = collections or CollectionsConfig()
        self._subscriptions: Set[MessageSubscription] = set()

    def _collection(self, room_id: str) -> str:
        return messages_collection(self.collections, room_id)

    async def send(self, room: Room, body: Any, sender: Any) -> Message:
        """Append a message to a room.

        Args:
            room: Room snapshot; its first two members are the allowed senders
            body: Non-empty text
            sender: User id, or a Member / mapping carrying ``userId``

        Raises:
            ValidationError: empty body or sender outside the room
        """
        body = validate_body(body)
        sender_id = resolve_sender(sender, room)

        message = Message.new(new_document_id(), room.id, body, sender_id)
        await self.store.set(self._collection(room.id), message.to_document(), key=message.id)
        logger.debug(f"Message {message.id} sent by {sender_id} in room {room.id}")
        return message

    async def get(self, room_id: str, message_id: str) -> Message:
        """Load a message.

        Raises:
            NotFoundError: no such message
        """
        doc = await self.store.get(self._collection(room_id), message_id)
        if doc is None:
            raise NotFoundError(f"Message {message_id} doesn't exist in chat room {room_id}")
        return Message.from_document(room_id, doc)

    async def update(self, room_id: str, message_id: str, body: Any) -> Message:
        """Replace a message body and stamp ``updatedAt``.

        The caller is not checked against the original sender.
        """
        body = validate_body(body)
        require_text(message_id, "message id should be a non-empty string")
        await self.store.update(
            self._collection(room_id),
            message_id,
            {"body": body, "updatedAt": to_millis(now())},
        )
        return await self.get(room_id, message_id)

    async def remove(self, room_id: str, message_id: str) -> None:
        """Delete a message; deleting a missing one is not an error."""
        require_text(message_id, "message id should be a non-empty string")
        await self.store.delete(self._collection(room_id), message_id)
        logger.debug(f"Message {message_id} removed from room {room_id}")

    async def subscribe_new(self, room: Room, on_message: MessageCallback) -> MessageSubscription:
        """Deliver messages of ``room`` to ``on_message`` as they are added.

        The first delivery replays the messages already stored, then new
        ones follow in the order the store feed reports them. That order is
        the feed's, not necessarily ``created_at`` order when several
        writers send at once.
        """
        subscription = MessageSubscription(room.id, on_message)
        subscription._feed = await self.store.subscribe(self._collection(room.id), subscription._handle)
        subscription._on_cancel = self._subscriptions.discard
        self._subscriptions.add(subscription)
        logger.debug(f"Listening for messages in room {room.id}")
        return subscription

    async def close(self) -> None:
        """Cancel every subscription still open."""
        for subscription in list(self._subscriptions):
            await subscription.cancel()
