"""Document store adapter contract.

The chat core only talks to the database through this interface: keyed
documents grouped in collections, conditioned updates for optimistic
concurrency, and a per-collection change feed.

Nested collections are addressed by path, e.g. ``ChatRooms/<roomId>/messages``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union


class _DeleteField:
    """Sentinel type for DELETE_FIELD."""

    _instance: Optional["_DeleteField"] = None

    def __new__(cls) -> "_DeleteField":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"


# Use as a value in update() or merge-set() to remove the field
DELETE_FIELD = _DeleteField()


class ChangeType(Enum):
    """Kinds of change reported by a collection feed."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class Document:
    """A stored document: its key and a copy of its fields."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)


@dataclass
class Change:
    """One entry of a change-feed batch."""

    type: ChangeType
    document: Document


ChangeHandler = Callable[[List[Change]], Union[None, Awaitable[None]]]


def collection_path(*parts: str) -> str:
    """Join collection / key segments into a collection path."""
    return "/".join(p.strip("/") for p in parts if p)


class StoreSubscription(ABC):
    """Handle on a live change feed."""

    @abstractmethod
    async def cancel(self) -> None:
        """Stop the feed. No handler call happens after this returns."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """Whether the feed still delivers batches."""


class DocumentStore(ABC):
    """Async key-value document store with change notification.

    Every method is a coroutine; implementations raise ``StoreError`` for
    I/O failures, ``NotFoundError`` when updating a missing document and
    ``ConflictError`` when an ``expected`` precondition does not hold.
    """

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[Document]:
        """Return the document or None if it does not exist."""

    @abstractmethod
    async def set(
        self,
        collection: str,
        fields: Mapping[str, Any],
        key: Optional[str] = None,
        merge: bool = False,
    ) -> str:
        """Write a document and return its key.

        Args:
            collection: Collection path
            fields: Document fields
            key: Document key; a fresh unique key is generated when omitted
            merge: Merge ``fields`` into an existing document instead of
                replacing it (creates the document if missing)
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        key: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Apply a partial update to an existing document.

        Args:
            expected: Field values the stored document must still hold; the
                check and the write are atomic (compare-on-write).
        """

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    @abstractmethod
    async def list_keys(self, collection: str) -> List[str]:
        """List document keys of a collection in insertion order."""

    @abstractmethod
    async def subscribe(self, collection: str, handler: ChangeHandler) -> StoreSubscription:
        """Open a change feed on a collection.

        The first batch reports the documents already present as ADDED,
        later batches report each write as it is applied.
        """

    async def close(self) -> None:
        """Release store resources."""
        return None
