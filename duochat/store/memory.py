"""In-process document store.

Keeps collections in dictionaries and serves change feeds from per-subscriber
queues. It is the reference for the adapter contract and the store used by
tests; ``FileDocumentStore`` builds persistence on top of it.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from loguru import logger

from duochat.errors import ConflictError, NotFoundError
from duochat.store.base import (
    DELETE_FIELD,
    Change,
    ChangeHandler,
    ChangeType,
    Document,
    DocumentStore,
    StoreSubscription,
)
from duochat.utils.ids import new_document_id

T = TypeVar("T")

# (collection, change type, key, data) announced once a write is persisted
Pending = Tuple[str, ChangeType, str, Dict[str, Any]]


class MemorySubscription(StoreSubscription):
    """A change feed drained by its own task, one batch at a time."""

    def __init__(self, store: "MemoryDocumentStore", collection: str, handler: ChangeHandler):
        self.store = store
        self.collection = collection
        self.handler = handler
        self._queue: asyncio.Queue[List[Change]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._active = False

    def start(self) -> None:
        self._active = True
        self._task = asyncio.create_task(self._pump())

    def push(self, batch: List[Change]) -> None:
        if self._active and batch:
            self._queue.put_nowait(batch)

    async def _pump(self) -> None:
        while self._active:
            batch = await self._queue.get()
            if not self._active:
                break
            try:
                result = self.handler(batch)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Change handler failed on {self.collection}: {e}")

    @property
    def active(self) -> bool:
        return self._active

    async def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self.store._detach(self)
        if self._task and self._task is not asyncio.current_task():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.debug(f"Feed on {self.collection} cancelled")


class MemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed store with atomic compare-on-write updates.

    Each operation yields to the event loop before touching data, the way a
    network round-trip would, so interleavings between concurrent callers
    are observable in tests.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: Dict[str, List[MemorySubscription]] = {}
        self._lock = asyncio.Lock()

    # Hooks for persistent subclasses

    def _refresh(self) -> None:
        """Reload state before an operation (no-op in memory)."""

    def _flush(self) -> None:
        """Persist state after a write (no-op in memory)."""

    async def _write(self, mutate: Callable[[], Tuple[T, List[Pending]]]) -> T:
        """Apply ``mutate`` to fresh state, persist it, then notify feeds.

        ``mutate`` returns its result and the changes to announce. Subclasses
        may run it more than once, so it must only touch ``_collections``.
        """
        self._refresh()
        result, changes = mutate()
        if changes:
            self._flush()
        for collection, change_type, key, data in changes:
            self._notify(collection, change_type, key, data)
        return result

    async def _round_trip(self) -> None:
        await asyncio.sleep(self.latency)

    def _documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _notify(self, collection: str, change_type: ChangeType, key: str, data: Dict[str, Any]) -> None:
        for sub in list(self._subscriptions.get(collection, [])):
            sub.push([Change(type=change_type, document=Document(id=key, data=copy.deepcopy(data)))])

    def _detach(self, sub: MemorySubscription) -> None:
        subs = self._subscriptions.get(sub.collection, [])
        if sub in subs:
            subs.remove(sub)

    @staticmethod
    def _apply(target: Dict[str, Any], fields: Mapping[str, Any]) -> None:
        for name, value in fields.items():
            if value is DELETE_FIELD:
                target.pop(name, None)
            else:
                target[name] = copy.deepcopy(value)

    async def get(self, collection: str, key: str) -> Optional[Document]:
        await self._round_trip()
        async with self._lock:
            self._refresh()
            data = self._documents(collection).get(key)
            if data is None:
                return None
            return Document(id=key, data=copy.deepcopy(data))

    async def set(
        self,
        collection: str,
        fields: Mapping[str, Any],
        key: Optional[str] = None,
        merge: bool = False,
    ) -> str:
        await self._round_trip()
        key = key or new_document_id()

        def mutate() -> Tuple[ChangeType, List[Pending]]:
            docs = self._documents(collection)
            existing = docs.get(key)
            data: Dict[str, Any] = dict(existing) if (merge and existing is not None) else {}
            self._apply(data, fields)
            docs[key] = data
            change = ChangeType.ADDED if existing is None else ChangeType.MODIFIED
            return change, [(collection, change, key, data)]

        async with self._lock:
            change = await self._write(mutate)
        logger.debug(f"set {collection}/{key} ({change.value})")
        return key

    async def update(
        self,
        collection: str,
        key: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        await self._round_trip()

        def mutate() -> Tuple[None, List[Pending]]:
            data = self._documents(collection).get(key)
            if data is None:
                raise NotFoundError(f"{collection}/{key} does not exist")
            if expected:
                actual = {name: data.get(name) for name in expected}
                if actual != dict(expected):
                    raise ConflictError(
                        f"{collection}/{key} changed: expected {dict(expected)}, found {actual}",
                        actual=actual,
                    )
            self._apply(data, fields)
            return None, [(collection, ChangeType.MODIFIED, key, data)]

        async with self._lock:
            await self._write(mutate)
        logger.debug(f"update {collection}/{key} fields={list(fields)}")

    async def delete(self, collection: str, key: str) -> bool:
        await self._round_trip()

        def mutate() -> Tuple[bool, List[Pending]]:
            data = self._documents(collection).pop(key, None)
            if data is None:
                return False, []
            return True, [(collection, ChangeType.REMOVED, key, data)]

        async with self._lock:
            deleted = await self._write(mutate)
        if deleted:
            logger.debug(f"delete {collection}/{key}")
        return deleted

    async def list_keys(self, collection: str) -> List[str]:
        await self._round_trip()
        async with self._lock:
            self._refresh()
            return list(self._documents(collection).keys())

    async def subscribe(self, collection: str, handler: ChangeHandler) -> StoreSubscription:
        await self._round_trip()
        async with self._lock:
            self._refresh()
            sub = MemorySubscription(self, collection, handler)
            sub.start()
            snapshot = [
                Change(type=ChangeType.ADDED, document=Document(id=key, data=copy.deepcopy(data)))
                for key, data in self._documents(collection).items()
            ]
            sub.push(snapshot)
            self._subscriptions.setdefault(collection, []).append(sub)
            logger.debug(f"Feed opened on {collection} ({len(snapshot)} existing)")
            return sub

    async def close(self) -> None:
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await sub.cancel()
        self._subscriptions.clear()
