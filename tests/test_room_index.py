"""Tests for the per-user room index."""

import asyncio

import pytest

from duochat.errors import NotFoundError, ValidationError
from duochat.rooms.index import RoomIndex
from duochat.utils.ids import resolve_user_id


@pytest.fixture
def index(store):
    return RoomIndex(store)


class TestRoomIndex:
    """Test membership recording, listing and retraction."""

    @pytest.mark.asyncio
    async def test_first_membership_creates_record(self, index, store):
        await index.record_membership("u1", "r1")

        assert (await store.get("UsersChat", "u1")).data == {"r1": "r1"}

    @pytest.mark.asyncio
    async def test_memberships_accumulate(self, index):
        await index.record_membership("u1", "r1")
        await index.record_membership("u1", "r2")
        await index.record_membership("u1", "r1")

        assert await index.list_memberships("u1") == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_concurrent_records_for_same_user(self, index):
        """No room id is lost when first-time records race."""
        await asyncio.gather(*(index.record_membership("u1", f"r{i}") for i in range(10)))

        assert sorted(await index.list_memberships("u1")) == sorted(f"r{i}" for i in range(10))

    @pytest.mark.asyncio
    async def test_unknown_user_is_reported(self, index):
        with pytest.raises(NotFoundError):
            await index.list_memberships("ghost")

    @pytest.mark.asyncio
    async def test_retract_leaves_empty_record(self, index):
        await index.record_membership("u1", "r1")

        await index.retract_membership("u1", "r1")

        assert await index.list_memberships("u1") == []

    @pytest.mark.asyncio
    async def test_retract_unknown_is_noop(self, index):
        await index.retract_membership("ghost", "r1")
        await index.record_membership("u1", "r1")
        await index.retract_membership("u1", "r2")

        assert await index.list_memberships("u1") == ["r1"]

    @pytest.mark.asyncio
    async def test_rejects_empty_ids(self, index):
        with pytest.raises(ValidationError):
            await index.record_membership("", "r1")
        with pytest.raises(ValidationError):
            await index.list_memberships("")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "   ", "\t"])
    async def test_blank_user_ids_rejected_everywhere(self, index, store, user_id):
        with pytest.raises(ValidationError):
            await index.record_membership(user_id, "r1")
        with pytest.raises(ValidationError):
            await index.list_memberships(user_id)
        with pytest.raises(ValidationError):
            resolve_user_id({"userId": user_id})
        assert await store.list_keys("UsersChat") == []
