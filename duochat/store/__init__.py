"""Document store adapters for duochat."""

from duochat.config.schema import StoreConfig
from duochat.store.base import (
    DELETE_FIELD,
    Change,
    ChangeType,
    Document,
    DocumentStore,
    StoreSubscription,
    collection_path,
)
from duochat.store.file import FileDocumentStore
from duochat.store.memory import MemoryDocumentStore


def create_store(config: StoreConfig) -> DocumentStore:
    """Build the store selected by ``config.backend``."""
    if config.backend == "file":
        return FileDocumentStore(
            config.store_path,
            max_retries=config.write_retries,
            poll_interval=config.poll_interval,
        )
    return MemoryDocumentStore()


__all__ = [
    "DELETE_FIELD",
    "Change",
    "ChangeType",
    "Document",
    "DocumentStore",
    "StoreSubscription",
    "collection_path",
    "FileDocumentStore",
    "MemoryDocumentStore",
    "create_store",
]
