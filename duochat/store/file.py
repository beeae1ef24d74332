"""JSON-file document store.

All collections live in one JSON file shared by every process that opens it
(e.g. CLI invocations). Each operation re-reads the file when its ETag
(content hash) changed. Writes go to a temp file that replaces the original
only if nobody else wrote in between; when someone did, the write is replayed
on the fresh content with exponential backoff.

Change feeds see writes from other processes by polling the ETag and
diffing the subscribed collections against the last content this store saw.
"""

from __future__ import annotations

import asyncio
import fcntl
import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from duochat.errors import ConflictError, StoreError
from duochat.store.base import ChangeHandler, ChangeType, StoreSubscription
from duochat.store.memory import MemoryDocumentStore


class StaleViewError(Exception):
    """The store file changed after it was last read."""


class FileDocumentStore(MemoryDocumentStore):
    """Memory store persisted to a single JSON file with compare-and-set writes."""

    def __init__(
        self,
        path: Path,
        latency: float = 0.0,
        max_retries: int = 5,
        poll_interval: float = 0.5,
    ):
        super().__init__(latency=latency)
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self._lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._etag: Optional[str] = None
        self._content: Optional[str] = None  # Last content read or written
        self._stale = False
        self._poller: Optional[asyncio.Task] = None
        self._refresh()

    @staticmethod
    def _compute_etag(content: str) -> str:
        """Compute ETag (hash) for content."""
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    def _parse(self, content: Optional[str]) -> Dict[str, Dict[str, Dict[str, Any]]]:
        if not content or not content.strip():
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt store file {self.path}: {e}") from e

    def _read(self) -> tuple[Optional[str], Optional[str]]:
        """Read raw content and its ETag, or (None, None) if missing."""
        if not self.path.exists():
            return None, None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                content = f.read()
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise StoreError(f"Cannot read store file {self.path}: {e}") from e
        return content, self._compute_etag(content)

    def _refresh(self) -> None:
        content, etag = self._read()
        if etag == self._etag and not self._stale:
            return
        loaded = self._parse(content)
        if any(self._subscriptions.values()):
            self._announce(self._parse(self._content), loaded)
        self._collections = loaded
        self._etag = etag
        self._content = content
        self._stale = False
        logger.debug(f"Loaded store file {self.path} (etag {etag})")

    def _announce(self, before: Dict[str, Dict[str, Any]], after: Dict[str, Dict[str, Any]]) -> None:
        """Report documents another writer added, changed or deleted."""
        for collection, subs in list(self._subscriptions.items()):
            if not subs:
                continue
            old = before.get(collection, {})
            new = after.get(collection, {})
            for key, data in new.items():
                if key not in old:
                    self._notify(collection, ChangeType.ADDED, key, data)
                elif old[key] != data:
                    self._notify(collection, ChangeType.MODIFIED, key, data)
            for key, data in old.items():
                if key not in new:
                    self._notify(collection, ChangeType.REMOVED, key, data)

    def _flush(self) -> None:
        content = json.dumps(self._collections, indent=2, sort_keys=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(self._lock_path, "w") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    _, current = self._read()
                    if current != self._etag:
                        self._stale = True
                        raise StaleViewError(f"Store file {self.path} was modified concurrently")
                    with open(temp_path, "w", encoding="utf-8") as f:
                        f.write(content)
                    temp_path.replace(self.path)
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            # The in-memory view holds an unsaved write; reload it next time
            self._stale = True
            raise StoreError(f"Cannot write store file {self.path}: {e}") from e
        self._etag = self._compute_etag(content)
        self._content = content

    async def _write(self, mutate):
        for attempt in range(self.max_retries):
            try:
                return await super()._write(mutate)
            except StaleViewError:
                if attempt < self.max_retries - 1:
                    logger.debug(f"Store file {self.path} changed under a write (attempt {attempt + 1}), retrying")
                    await asyncio.sleep(0.01 * (2 ** attempt))
        logger.warning(f"Write to {self.path} kept losing to other writers")
        raise ConflictError(
            f"Store file {self.path} was modified concurrently {self.max_retries} times in a row"
        )

    async def subscribe(self, collection: str, handler: ChangeHandler) -> StoreSubscription:
        sub = await super().subscribe(collection, handler)
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll())
        return sub

    async def _poll(self) -> None:
        """Pick up other processes' writes while any feed is open."""
        while any(self._subscriptions.values()):
            await asyncio.sleep(self.poll_interval)
            try:
                async with self._lock:
                    self._refresh()
            except StoreError as e:
                logger.warning(f"Polling store file failed: {e}")

    async def close(self) -> None:
        await super().close()
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None
