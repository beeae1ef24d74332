"""Shared fixtures for duochat tests."""

import asyncio
import json

import pytest

from duochat.config.schema import Config
from duochat.context import initialize
from duochat.errors import StoreError
from duochat.store.file import FileDocumentStore
from duochat.store.memory import MemoryDocumentStore


class FlakyStore(MemoryDocumentStore):
    """Memory store that fails chosen operations on chosen keys."""

    def __init__(self):
        super().__init__()
        self.fail_get: set[str] = set()
        self.fail_update: set[str] = set()

    async def get(self, collection, key):
        if key in self.fail_get:
            raise StoreError(f"get {collection}/{key} failed")
        return await super().get(collection, key)

    async def update(self, collection, key, fields, expected=None):
        if key in self.fail_update:
            raise StoreError(f"update {collection}/{key} failed")
        await super().update(collection, key, fields, expected=expected)


class InterleavedFileStore(FileDocumentStore):
    """File store whose next `interruptions` flushes each find the file rewritten by someone else."""

    def __init__(self, path, interruptions=0, **kwargs):
        super().__init__(path, **kwargs)
        self.interruptions = interruptions

    def _flush(self):
        if self.interruptions:
            self.interruptions -= 1
            data = json.loads(self.path.read_text()) if self.path.exists() else {}
            data.setdefault("Elsewhere", {})[f"w{self.interruptions}"] = {"by": "other process"}
            self.path.write_text(json.dumps(data))
        super()._flush()


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return MemoryDocumentStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def ctx(store):
    """Chat context over the in-memory store."""
    return initialize(Config(), store=store)


@pytest.fixture
def interleaved_store(tmp_path):
    """File store racing an imaginary second process; set `.interruptions` to arm it."""
    return InterleavedFileStore(tmp_path / "store.json", max_retries=3)


@pytest.fixture
def flaky_ctx(flaky_store):
    return initialize(Config(), store=flaky_store)


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds (or fail after a timeout)."""

    async def _wait(predicate, timeout: float = 1.0):
        async def poll():
            while not predicate():
                await asyncio.sleep(0.005)

        await asyncio.wait_for(poll(), timeout)

    return _wait
