import asyncio
import json
from typing import Any, Iterable, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from constants import REDIS_URL, STORE_READ_RETRIES
from errors import StoreUnavailable
from logging_config import get_logger

logger = get_logger(__name__)

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


def _encode(value: Any) -> str:
    return json.dumps(value)


def _decode(value: str) -> Any:
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


class RedisBackend:
    """Key/value, hash, set, list, expiry and pub/sub primitives over Redis.

    One instance is built at startup and handed to every component. Reads go
    through ``_read`` and are retried with bounded backoff on transient
    failures; writes go through ``_write`` and are never retried, since a
    write whose reply was lost may already have applied.
    """

    def __init__(self, client: aioredis.Redis, read_retries: int = STORE_READ_RETRIES):
        self.redis_client = client
        self.read_retries = max(1, read_retries)

    @classmethod
    def from_url(cls, url: str = REDIS_URL, **kwargs) -> "RedisBackend":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, **kwargs)

    async def connect(self):
        await self._read("ping", self.redis_client.ping)
        logger.info("Redis client connected successfully")

    async def close(self):
        await self.redis_client.aclose()
        logger.info("Redis client closed")

    async def _read(self, name: str, op, *args, **kwargs):
        for attempt in range(1, self.read_retries + 1):
            try:
                return await op(*args, **kwargs)
            except TRANSIENT_ERRORS as e:
                if attempt == self.read_retries:
                    logger.error(f"Redis read {name} failed after {attempt} attempts: {e}")
                    raise StoreUnavailable(f"Store unavailable during {name}") from e
                delay = min(attempt * 0.05, 2.0)
                logger.warning(f"Redis read {name} failed (attempt {attempt}), retrying in {delay:.2f}s: {e}")
                await asyncio.sleep(delay)

    async def _write(self, name: str, op, *args, **kwargs):
        try:
            return await op(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            logger.error(f"Redis write {name} failed: {e}")
            raise StoreUnavailable(f"Store unavailable during {name}") from e

    # Reads

    async def ping(self) -> bool:
        return await self._read("ping", self.redis_client.ping)

    async def ttl(self, key: str) -> int:
        """Seconds left on ``key``; -2 when missing, -1 when it never expires."""
        return await self._read("ttl", self.redis_client.ttl, key)

    async def exists(self, key: str) -> bool:
        return bool(await self._read("exists", self.redis_client.exists, key))

    async def hgetall(self, key: str) -> dict:
        data = await self._read("hgetall", self.redis_client.hgetall, key)
        return {k: _decode(v) for k, v in data.items()}

    async def smembers(self, key: str) -> set:
        return await self._read("smembers", self.redis_client.smembers, key)

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Raw list entries; callers decode and keep the raw value for LREM."""
        return await self._read("lrange", self.redis_client.lrange, key, start, stop)

    async def hash_snapshot(self, hash_key: str, set_key: str) -> tuple[dict, set, int]:
        """Hash fields, set members and the hash's TTL read in one transaction."""

        async def snapshot():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.hgetall(hash_key)
                pipe.smembers(set_key)
                pipe.ttl(hash_key)
                return await pipe.execute()

        fields, members, ttl = await self._read("hash_snapshot", snapshot)
        return {k: _decode(v) for k, v in fields.items()}, set(members), ttl

    # Writes

    async def create_hash(self, key: str, mapping: dict, ttl: int,
                          set_key: Optional[str] = None, members: Iterable[str] = ()):
        """Write a hash (and optionally a companion set) with the same expiry, atomically."""
        encoded = {k: _encode(v) for k, v in mapping.items() if v is not None}
        members = list(members)

        async def create():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=encoded)
                pipe.expire(key, ttl)
                if set_key and members:
                    pipe.sadd(set_key, *members)
                    pipe.expire(set_key, ttl)
                return await pipe.execute()

        await self._write("create_hash", create)
        logger.debug(f"Created hash {key} with TTL {ttl}")

    async def add_to_set_if_exists(self, guard_key: str, set_key: str, member: str) -> bool:
        """SADD ``member`` only while ``guard_key`` exists; the set inherits its TTL.

        Uses WATCH on the guard so a concurrent delete or expiry aborts the
        transaction and the check is re-run. Returns False when the guard is gone.
        """

        async def add():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(guard_key)
                        ttl = await pipe.ttl(guard_key)
                        if ttl == -2:
                            return False
                        pipe.multi()
                        pipe.sadd(set_key, member)
                        if ttl > 0:
                            pipe.expire(set_key, ttl)
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug(f"Watched key {guard_key} changed, retrying set insert")
                        continue

        return await self._write("add_to_set_if_exists", add)

    async def rpush_if_exists(self, guard_key: str, key: str, value: str,
                              linked_keys: Iterable[str] = ()) -> Optional[int]:
        """Append ``value`` only while ``guard_key`` exists.

        The list and every linked key get the guard's remaining TTL in the same
        transaction. A delete or expiry of the guard between the TTL read and
        EXEC aborts the push, so nothing is written for a room that is gone.
        Returns the new list length, or None when the guard is missing.
        """

        async def push():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(guard_key)
                        ttl = await pipe.ttl(guard_key)
                        if ttl == -2:
                            return None
                        pipe.multi()
                        pipe.rpush(key, value)
                        if ttl > 0:
                            for k in {key, *linked_keys}:
                                pipe.expire(k, ttl)
                        results = await pipe.execute()
                        return results[0]
                    except WatchError:
                        logger.debug(f"Watched key {guard_key} changed, retrying push to {key}")
                        continue

        return await self._write("rpush_if_exists", push)

    async def append_capped(self, key: str, value: str, limit: int, ttl: int):
        """RPUSH then trim to the last ``limit`` entries and refresh the expiry."""

        async def append():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, value)
                pipe.ltrim(key, -limit, -1)
                pipe.expire(key, ttl)
                return await pipe.execute()

        await self._write("append_capped", append)

    async def lrem(self, key: str, value: str) -> int:
        return await self._write("lrem", self.redis_client.lrem, key, 0, value)

    async def delete(self, *keys: str, replace_lists: Optional[dict] = None) -> int:
        """Delete all ``keys`` in a single MULTI so partial deletion is never observable.

        ``replace_lists`` maps a list key to ``(value, ttl)``: in the same
        transaction the list is emptied and left holding only that value.
        """
        if not keys:
            return 0
        replace_lists = replace_lists or {}

        async def delete_all():
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.delete(*keys)
                for list_key, (value, ttl) in replace_lists.items():
                    pipe.delete(list_key)
                    pipe.rpush(list_key, value)
                    pipe.expire(list_key, ttl)
                return await pipe.execute()

        results = await self._write("delete", delete_all)
        logger.debug(f"Deleted keys {keys}: {results[0]} removed")
        return results[0]

    # Pub/sub

    async def publish(self, channel: str, message: str) -> int:
        subscribers = await self._write("publish", self.redis_client.publish, channel, message)
        logger.debug(f"Published message to channel {channel}, {subscribers} subscribers")
        return subscribers

    def pubsub(self):
        """A PubSub object; it checks out its own dedicated connection on subscribe."""
        return self.redis_client.pubsub()
