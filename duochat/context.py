"""Chat context: the explicit handle every operation runs against.

``initialize()`` replaces a process-wide database connection with an object
that callers pass around, so tests can build one over an in-memory store.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from duochat.config.schema import Config
from duochat.errors import InitializeError
from duochat.rooms.index import RoomIndex
from duochat.rooms.manager import RoomManager
from duochat.rooms.messages import MessageLog
from duochat.rooms.reconciler import MutualRoomReconciler
from duochat.store import DocumentStore, create_store


class ChatContext:
    """Store handle plus the room components built on it."""

    def __init__(self, config: Config, store: DocumentStore):
        self.config = config
        self.store = store
        self.index = RoomIndex(store, collection=config.collections.user_rooms)
        self.rooms = RoomManager(
            store,
            self.index,
            collections=config.collections,
            prune_index_on_remove=config.rooms.prune_index_on_remove,
        )
        self.messages = MessageLog(store, collections=config.collections)
        self.reconciler = MutualRoomReconciler(self.index, self.rooms)

    async def close(self) -> None:
        """Cancel open message subscriptions and release the store."""
        await self.messages.close()
        await self.store.close()
        logger.debug("Chat context closed")

    async def __aenter__(self) -> "ChatContext":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def initialize(
    config: Union[Config, Mapping[str, Any]],
    store: Optional[DocumentStore] = None,
) -> ChatContext:
    """
    Build a chat context from configuration.

    Args:
        config: A Config, or a non-empty mapping in the config file layout
        store: Store to use instead of the one ``config.store`` selects

    Raises:
        InitializeError: config is not a mapping/Config, is empty or invalid
    """
    if isinstance(config, Config):
        settings = config
    elif isinstance(config, Mapping):
        if not config:
            raise InitializeError("The configuration shouldn't be empty")
        try:
            settings = Config.model_validate(dict(config))
        except PydanticValidationError as e:
            raise InitializeError(f"Invalid configuration: {e}") from e
    else:
        raise InitializeError("The configuration must be a Config or a mapping")

    ctx = ChatContext(settings, store or create_store(settings.store))
    logger.debug(f"Chat context initialized ({type(ctx.store).__name__})")
    return ctx
