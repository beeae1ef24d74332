"""Tests for the message log and live delivery."""

import asyncio

import pytest

from duochat.config.schema import Config
from duochat.context import initialize
from duochat.errors import NotFoundError, ValidationError
from duochat.models.room import Member
from duochat.store.file import FileDocumentStore

U1 = {"userId": "u1"}
U2 = {"userId": "u2"}


@pytest.fixture
def make_room(ctx):
    async def _make(joined: bool = True):
        room = await ctx.rooms.create("Trip", [U1])
        if joined:
            room = await ctx.rooms.join(room.id, U2)
        return room

    return _make


class TestSend:
    """Test sending messages."""

    @pytest.mark.asyncio
    async def test_send_persists_document(self, ctx, store, make_room):
        room = await make_room()

        message = await ctx.messages.send(room, "hello", "u1")

        doc = await store.get(f"ChatRooms/{room.id}/messages", message.id)
        assert doc.data["body"] == "hello"
        assert doc.data["from"] == "u1"
        assert isinstance(doc.data["createdAt"], int)
        assert "updatedAt" not in doc.data

    @pytest.mark.asyncio
    async def test_sender_as_member_or_mapping(self, ctx, make_room):
        room = await make_room()

        assert (await ctx.messages.send(room, "a", {"userId": "u2"})).sender == "u2"
        assert (await ctx.messages.send(room, "b", Member("u1"))).sender == "u1"

    @pytest.mark.asyncio
    async def test_each_send_is_independent(self, ctx, store, make_room):
        room = await make_room()

        sent = await asyncio.gather(*(ctx.messages.send(room, f"m{i}", "u1") for i in range(5)))

        assert len({m.id for m in sent}) == 5
        assert len(await store.list_keys(f"ChatRooms/{room.id}/messages")) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["open", "closed", "removed"])
    async def test_outsider_rejected_in_any_state(self, ctx, store, make_room, state):
        room = await make_room(joined=state != "open")
        if state == "removed":
            await ctx.rooms.remove(room.id, soft=True)
            room = await ctx.rooms.find_by_id(room.id)

        with pytest.raises(ValidationError, match="must be in this chat room"):
            await ctx.messages.send(room, "hi", "u3")

        assert await store.list_keys(f"ChatRooms/{room.id}/messages") == []

    @pytest.mark.asyncio
    async def test_empty_body_rejected(self, ctx, make_room):
        room = await make_room()

        with pytest.raises(ValidationError):
            await ctx.messages.send(room, "", "u1")
        with pytest.raises(ValidationError):
            await ctx.messages.send(room, 42, "u1")


class TestUpdateAndRemove:
    """Test editing and deleting messages."""

    @pytest.mark.asyncio
    async def test_update_round_trip(self, ctx, make_room):
        room = await make_room()
        message = await ctx.messages.send(room, "hello", "u1")

        updated = await ctx.messages.update(room.id, message.id, "hello again")
        loaded = await ctx.messages.get(room.id, message.id)

        assert updated.body == "hello again"
        assert loaded.body == "hello again"
        assert loaded.updated_at is not None
        assert loaded.updated_at >= loaded.created_at
        assert loaded.sender == "u1"

    @pytest.mark.asyncio
    async def test_update_invalid_body(self, ctx, make_room):
        room = await make_room()
        message = await ctx.messages.send(room, "hello", "u1")

        with pytest.raises(ValidationError):
            await ctx.messages.update(room.id, message.id, "")
        assert (await ctx.messages.get(room.id, message.id)).body == "hello"

    @pytest.mark.asyncio
    async def test_update_missing_message(self, ctx, make_room):
        room = await make_room()

        with pytest.raises(NotFoundError):
            await ctx.messages.update(room.id, "nope", "text")

    @pytest.mark.asyncio
    async def test_remove(self, ctx, make_room):
        room = await make_room()
        message = await ctx.messages.send(room, "hello", "u1")

        await ctx.messages.remove(room.id, message.id)
        await ctx.messages.remove(room.id, message.id)

        with pytest.raises(NotFoundError):
            await ctx.messages.get(room.id, message.id)


class TestSubscribe:
    """Test live delivery to listeners."""

    @pytest.mark.asyncio
    async def test_existing_then_new_in_feed_order(self, ctx, make_room, wait_until):
        room = await make_room()
        await ctx.messages.send(room, "first", "u1")
        received = []

        sub = await ctx.messages.subscribe_new(room, received.append)
        await ctx.messages.send(room, "second", "u2")
        await ctx.messages.send(room, "third", "u1")
        await wait_until(lambda: len(received) == 3)
        await sub.cancel()

        assert [m.body for m in received] == ["first", "second", "third"]
        assert [m.sender for m in received] == ["u1", "u2", "u1"]
        assert all(m.room_id == room.id for m in received)

    @pytest.mark.asyncio
    async def test_edits_and_removals_are_not_delivered(self, ctx, make_room, wait_until):
        room = await make_room()
        received = []
        sub = await ctx.messages.subscribe_new(room, received.append)

        message = await ctx.messages.send(room, "hello", "u1")
        await ctx.messages.update(room.id, message.id, "edited")
        await ctx.messages.remove(room.id, message.id)
        await ctx.messages.send(room, "bye", "u2")
        await wait_until(lambda: len(received) == 2)
        await asyncio.sleep(0.02)
        await sub.cancel()

        assert [m.body for m in received] == ["hello", "bye"]

    @pytest.mark.asyncio
    async def test_same_id_delivered_once(self, ctx, store, make_room, wait_until):
        room = await make_room()
        received = []
        sub = await ctx.messages.subscribe_new(room, received.append)
        path = f"ChatRooms/{room.id}/messages"

        await store.set(path, {"body": "x", "from": "u1", "createdAt": 1}, key="m1")
        await store.delete(path, "m1")
        await store.set(path, {"body": "x", "from": "u1", "createdAt": 1}, key="m1")
        await store.set(path, {"body": "y", "from": "u2", "createdAt": 2}, key="m2")
        await wait_until(lambda: len(received) == 2)
        await asyncio.sleep(0.02)
        await sub.cancel()

        assert [m.id for m in received] == ["m1", "m2"]
        assert sub.delivered == 2

    @pytest.mark.asyncio
    async def test_async_callback(self, ctx, make_room, wait_until):
        room = await make_room()
        received = []

        async def on_message(message):
            await asyncio.sleep(0)
            received.append(message.body)

        sub = await ctx.messages.subscribe_new(room, on_message)
        await ctx.messages.send(room, "hello", "u1")
        await wait_until(lambda: received == ["hello"])
        await sub.cancel()

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_listening(self, ctx, make_room, wait_until):
        room = await make_room()
        received = []

        def on_message(message):
            received.append(message.body)
            if message.body == "bad":
                raise RuntimeError("listener bug")

        sub = await ctx.messages.subscribe_new(room, on_message)
        await ctx.messages.send(room, "bad", "u1")
        await ctx.messages.send(room, "good", "u2")
        await wait_until(lambda: len(received) == 2)
        await sub.cancel()

        assert received == ["bad", "good"]

    @pytest.mark.asyncio
    async def test_cancel_stops_delivery(self, ctx, make_room, wait_until):
        room = await make_room()
        received = []
        sub = await ctx.messages.subscribe_new(room, received.append)
        await ctx.messages.send(room, "before", "u1")
        await wait_until(lambda: len(received) == 1)

        await sub.cancel()
        await ctx.messages.send(room, "after", "u1")
        await asyncio.sleep(0.02)

        assert [m.body for m in received] == ["before"]
        assert sub.active is False

    @pytest.mark.asyncio
    async def test_context_manager_releases_feed(self, ctx, make_room):
        room = await make_room()

        async with await ctx.messages.subscribe_new(room, lambda m: None) as sub:
            assert sub.active is True

        assert sub.active is False

    @pytest.mark.asyncio
    async def test_closing_context_cancels_subscriptions(self, ctx, make_room):
        room = await make_room()
        sub = await ctx.messages.subscribe_new(room, lambda m: None)

        await ctx.close()

        assert sub.active is False


class TestSharedStoreFile:
    """Test messages when several processes share one store file."""

    @pytest.mark.asyncio
    async def test_send_survives_an_overlapping_writer(self, interleaved_store):
        ctx = initialize(Config(), store=interleaved_store)
        room = await ctx.rooms.create("Trip", [U1, U2])
        interleaved_store.interruptions = 2

        message = await ctx.messages.send(room, "hi", "u1")

        assert (await ctx.messages.get(room.id, message.id)).body == "hi"

    @pytest.mark.asyncio
    async def test_listener_sees_messages_from_another_process(self, tmp_path, wait_until):
        path = tmp_path / "store.json"
        watching = initialize(Config(), store=FileDocumentStore(path, poll_interval=0.01))
        sending = initialize(Config(), store=FileDocumentStore(path))
        room = await sending.rooms.create("Trip", [U1, U2])
        await sending.messages.send(room, "before", "u1")
        received = []

        async with watching, sending:
            await watching.messages.subscribe_new(room, received.append)
            await wait_until(lambda: len(received) == 1)
            await sending.messages.send(room, "from elsewhere", "u2")
            await wait_until(lambda: len(received) == 2)

        assert [m.body for m in received] == ["before", "from elsewhere"]
        assert received[1].sender == "u2"
