"""Message append/list/delete, redaction and TTL re-arming."""

import json

import pytest

from errors import RoomNotFound, Unauthorized


@pytest.mark.asyncio
async def test_append_then_list_round_trip(services):
    room_id, owner = await services.rooms.create(600)

    posted = await services.messages.append(
        room_id, "alice", "ciphertext==", owner, reply_to="abc", encrypted=True
    )
    [listed] = await services.messages.list(room_id, owner)

    for field in ("id", "sender", "text", "timestamp", "room_id", "reply_to", "encrypted"):
        assert getattr(listed, field) == getattr(posted, field)
    assert posted.token is None
    assert listed.token == owner


@pytest.mark.asyncio
async def test_append_to_missing_room(services, redis_client):
    with pytest.raises(RoomNotFound):
        await services.messages.append("missing", "alice", "hi", "c-x")
    assert await redis_client.exists("messages:missing") == 0


@pytest.mark.asyncio
async def test_list_redacts_other_users_tokens(services):
    room_id, owner = await services.rooms.create(600)
    member = await services.rooms.join(room_id)
    await services.messages.append(room_id, "owner", "one", owner)
    await services.messages.append(room_id, "member", "two", member)

    as_member = await services.messages.list(room_id, member)
    assert [m.text for m in as_member] == ["one", "two"]
    assert as_member[0].token is None
    assert as_member[1].token == member

    as_owner = await services.messages.list(room_id, owner)
    assert as_owner[0].token == owner
    assert as_owner[1].token is None


@pytest.mark.asyncio
async def test_append_stores_author_token(services, redis_client):
    room_id, owner = await services.rooms.create(600)
    await services.messages.append(room_id, "alice", "hi", owner)

    [raw] = await redis_client.lrange(f"messages:{room_id}", 0, -1)
    assert json.loads(raw)["token"] == owner


@pytest.mark.asyncio
async def test_append_rearms_linked_keys_without_extending_room(services, redis_client):
    room_id, owner = await services.rooms.create(100)
    await redis_client.expire(f"meta:{room_id}", 40)
    # Auxiliary keys written elsewhere without an expiry get pulled into line
    await redis_client.set(f"history:{room_id}", "x")
    await redis_client.set(room_id, "x")

    await services.messages.append(room_id, "alice", "hi", owner)

    room_ttl = await redis_client.ttl(f"meta:{room_id}")
    assert room_ttl <= 40
    for key in (f"messages:{room_id}", f"history:{room_id}", room_id):
        assert 0 < await redis_client.ttl(key) <= room_ttl


@pytest.mark.asyncio
async def test_delete_by_non_owner_is_refused(services):
    room_id, owner = await services.rooms.create(600)
    member = await services.rooms.join(room_id)
    posted = [await services.messages.append(room_id, "owner", f"m{i}", owner) for i in range(3)]

    with pytest.raises(Unauthorized):
        await services.messages.delete(room_id, posted[0].id, member)

    assert len(await services.messages.list(room_id, owner)) == 3


@pytest.mark.asyncio
async def test_delete_removes_only_matching_message(services):
    room_id, owner = await services.rooms.create(600)
    posted = [await services.messages.append(room_id, "owner", f"m{i}", owner) for i in range(3)]

    removed = await services.messages.delete(room_id, posted[1].id, owner)

    assert removed == 1
    remaining = await services.messages.list(room_id, owner)
    assert [m.id for m in remaining] == [posted[0].id, posted[2].id]


@pytest.mark.asyncio
async def test_delete_unknown_id_is_harmless(services):
    room_id, owner = await services.rooms.create(600)
    await services.messages.append(room_id, "owner", "keep", owner)

    assert await services.messages.delete(room_id, "nope", owner) == 0
    assert len(await services.messages.list(room_id, owner)) == 1


@pytest.mark.asyncio
async def test_list_skips_unreadable_records(services, redis_client):
    room_id, owner = await services.rooms.create(600)
    await services.messages.append(room_id, "owner", "ok", owner)
    await redis_client.rpush(f"messages:{room_id}", "not json")

    messages = await services.messages.list(room_id, owner)
    assert [m.text for m in messages] == ["ok"]


@pytest.mark.asyncio
async def test_append_racing_destroy_writes_nothing(poll_services, redis_client, monkeypatch):
    room_id, owner = await poll_services.rooms.create(600)
    original_pipeline = redis_client.pipeline
    raced = []

    def pipeline(*args, **kwargs):
        pipe = original_pipeline(*args, **kwargs)
        if raced:
            return pipe
        raced.append(True)
        real_ttl = pipe.ttl

        async def ttl_then_destroy(key):
            # The room is destroyed after the existence check but before EXEC
            pipe.ttl = real_ttl
            remaining = await real_ttl(key)
            await poll_services.rooms.destroy(room_id, owner)
            return remaining

        pipe.ttl = ttl_then_destroy
        return pipe

    monkeypatch.setattr(redis_client, "pipeline", pipeline)

    with pytest.raises(RoomNotFound):
        await poll_services.messages.append(room_id, "alice", "too late", owner)

    assert await redis_client.exists(f"messages:{room_id}") == 0
    events = [json.loads(raw)["event"] for raw in await redis_client.lrange(f"realtime:{room_id}", 0, -1)]
    assert events == ["chat.destroy"]
