"""Room create/join/ttl/destroy against an in-memory Redis."""

import asyncio

import pytest

from errors import BadRequest, RoomNotFound, Unauthorized
from realtime_bus import CHAT_DESTROY
from room_lifecycle import Absent, Room


@pytest.mark.asyncio
async def test_create_sets_meta_and_ttl(services, redis_client):
    room_id, owner = await services.rooms.create(600)

    ttl = await services.rooms.get_remaining_ttl(room_id)
    assert 0 < ttl <= 600
    assert owner.startswith("c-")
    assert await redis_client.exists(f"meta:{room_id}") == 1
    assert await redis_client.smembers(f"meta:{room_id}:connected") == {owner}
    assert await redis_client.ttl(f"meta:{room_id}:connected") > 0


@pytest.mark.asyncio
async def test_create_uses_default_ttl(services):
    room_id, _ = await services.rooms.create()
    assert 0 < await services.rooms.get_remaining_ttl(room_id) <= services.rooms.default_ttl


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [0, -5, 10**9])
async def test_create_rejects_out_of_range_ttl(services, ttl):
    with pytest.raises(BadRequest):
        await services.rooms.create(ttl)


@pytest.mark.asyncio
async def test_lookup_returns_room_or_absent(services):
    room_id, owner = await services.rooms.create(60)

    state = await services.rooms.lookup(room_id)
    assert isinstance(state, Room)
    assert state.owner_token == owner
    assert owner in state.connected_tokens
    assert state.created_at > 0

    assert isinstance(await services.rooms.lookup("nope"), Absent)


@pytest.mark.asyncio
async def test_join_missing_room_fails_without_creating_it(services, redis_client):
    with pytest.raises(RoomNotFound):
        await services.rooms.join("does-not-exist")
    assert await redis_client.exists("meta:does-not-exist") == 0
    assert await redis_client.exists("meta:does-not-exist:connected") == 0


@pytest.mark.asyncio
async def test_join_expired_room_fails(services, redis_client):
    room_id, _ = await services.rooms.create(60)
    await redis_client.pexpire(f"meta:{room_id}", 50)
    await asyncio.sleep(0.1)

    with pytest.raises(RoomNotFound):
        await services.rooms.join(room_id)
    assert await services.rooms.get_remaining_ttl(room_id) == 0


@pytest.mark.asyncio
async def test_concurrent_joins_keep_every_member(services):
    room_id, owner = await services.rooms.create(600)

    tokens = await asyncio.gather(*(services.rooms.join(room_id) for _ in range(25)))

    assert len(set(tokens)) == 25
    room = await services.rooms.require(room_id)
    assert room.connected_tokens == frozenset({owner, *tokens})


@pytest.mark.asyncio
async def test_owner_status(services):
    room_id, owner = await services.rooms.create(600)
    member = await services.rooms.join(room_id)

    assert await services.rooms.get_owner_status(room_id, owner) is True
    assert await services.rooms.get_owner_status(room_id, member) is False
    assert await services.rooms.get_owner_status("missing", owner) is False


@pytest.mark.asyncio
async def test_destroy_by_member_is_refused(services, redis_client):
    room_id, _ = await services.rooms.create(600)
    member = await services.rooms.join(room_id)

    with pytest.raises(Unauthorized):
        await services.rooms.destroy(room_id, member)
    assert await redis_client.exists(f"meta:{room_id}") == 1


@pytest.mark.asyncio
async def test_destroy_removes_every_room_key(services, redis_client):
    room_id, owner = await services.rooms.create(600)
    await services.rooms.join(room_id)
    await services.messages.append(room_id, "alice", "hi", owner)

    await services.rooms.destroy(room_id, owner)

    for key in (f"meta:{room_id}", f"meta:{room_id}:connected", f"messages:{room_id}", f"history:{room_id}", room_id):
        assert await redis_client.exists(key) == 0
    with pytest.raises(RoomNotFound):
        await services.rooms.join(room_id)
    with pytest.raises(RoomNotFound):
        await services.messages.list(room_id, owner)
    assert await services.rooms.get_remaining_ttl(room_id) == 0


@pytest.mark.asyncio
async def test_destroy_missing_room(services):
    with pytest.raises(RoomNotFound):
        await services.rooms.destroy("missing", "c-whatever")


@pytest.mark.asyncio
async def test_destroy_leaves_poll_subscribers_only_the_destroy_event(poll_services, redis_client):
    room_id, owner = await poll_services.rooms.create(600)
    await poll_services.messages.append(room_id, "alice", "secret text", owner)

    await poll_services.rooms.destroy(room_id, owner)

    assert await redis_client.llen(f"realtime:{room_id}") == 1
    assert 0 < await redis_client.ttl(f"realtime:{room_id}") <= 1800
    subscription = poll_services.bus.subscribe([room_id], last_timestamp=0)
    await subscription.open()
    events = await subscription.next_events(timeout=1.0)
    await subscription.close()
    assert [e["event"] for e in events] == [CHAT_DESTROY]
    assert events[0]["data"] == {"isDestroyed": True}
    assert "secret text" not in str(events)
