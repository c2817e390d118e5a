import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from redis.exceptions import RedisError

from backend import RedisBackend
from constants import (
    REALTIME_HISTORY_LIMIT,
    REALTIME_HISTORY_TTL,
    REALTIME_POLL_INTERVAL,
    REALTIME_STRATEGY,
)
from errors import StoreUnavailable
from logging_config import get_logger
from redis_keys import REDIS_REALTIME_KEY, REDIS_ROOM_CHANNEL

logger = get_logger(__name__)

CHAT_MESSAGE = "chat.message"
CHAT_DELETE = "chat.delete"
CHAT_DESTROY = "chat.destroy"


def now_ms() -> int:
    return int(time.time() * 1000)


def make_event(event: str, data: dict) -> dict:
    return {"id": uuid.uuid4().hex, "event": event, "data": data, "timestamp": now_ms()}


def parse_event(raw, channel: str) -> Optional[dict]:
    """Decode an event envelope, or None (logged) when it is malformed."""
    try:
        event = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Dropping undecodable event on channel {channel}: {e}")
        return None
    if not isinstance(event, dict) or "event" not in event:
        logger.error(f"Dropping malformed event on channel {channel}: {raw!r}")
        return None
    event.setdefault("data", {})
    event.setdefault("timestamp", 0)
    event["channel"] = channel
    return event


class Subscription(ABC):
    """A listener on one or more channels.

    ``next_events`` waits at most ``timeout`` seconds and returns whatever
    arrived, per channel in publish order. Nothing is returned after ``close``.
    """

    def __init__(self, channels: Iterable[str]):
        self.channels = list(dict.fromkeys(channels))
        self.active = False

    @abstractmethod
    async def open(self):
        ...

    @abstractmethod
    async def next_events(self, timeout: float) -> list[dict]:
        ...

    @abstractmethod
    async def close(self):
        ...


class RealtimeBus(ABC):
    @abstractmethod
    async def publish(self, channel: str, event: str, data: dict) -> dict:
        ...

    @abstractmethod
    def subscribe(self, channels: Iterable[str], last_timestamp: Optional[int] = None) -> Subscription:
        ...

    def retained_history(self, channel: str, final_event: dict) -> dict:
        """Lists to reset when ``channel`` is torn down, as ``{key: (raw, ttl)}``."""
        return {}


class PubSubSubscription(Subscription):
    def __init__(self, backend: RedisBackend, channels: Iterable[str], max_batch: int = 100):
        super().__init__(channels)
        self.backend = backend
        self.max_batch = max_batch
        self.pubsub = None

    async def open(self):
        self.pubsub = self.backend.pubsub()
        names = [REDIS_ROOM_CHANNEL.format(room_id=c) for c in self.channels]
        try:
            await self.pubsub.subscribe(*names)
        except RedisError as e:
            await self.close()
            raise StoreUnavailable("Could not subscribe to channels") from e
        self.active = True
        logger.debug(f"Subscribed to Redis channels {names}")

    async def _get_message(self, timeout: float):
        try:
            return await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        except RedisError as e:
            logger.error(f"Error in pubsub.get_message() for channels {self.channels}: {e}")
            raise StoreUnavailable("Subscription connection lost") from e

    async def next_events(self, timeout: float) -> list[dict]:
        if not self.active:
            return []
        events = []
        message = await self._get_message(max(timeout, 0.0))
        while message is not None and self.active:
            if message.get("type") == "message":
                event = parse_event(message["data"], message["channel"])
                if event is not None:
                    events.append(event)
            if len(events) >= self.max_batch:
                break
            message = await self._get_message(0.0)
        return events

    async def close(self):
        self.active = False
        if self.pubsub is None:
            return
        pubsub, self.pubsub = self.pubsub, None
        try:
            await pubsub.unsubscribe()
        except Exception as e:
            logger.error(f"Error unsubscribing from channels {self.channels}: {e}")
        try:
            await pubsub.aclose()
            logger.debug(f"Closed pub/sub connection for channels {self.channels}")
        except Exception as e:
            logger.error(f"Error closing pub/sub for channels {self.channels}: {e}")


class PubSubBus(RealtimeBus):
    """Publishes straight to Redis pub/sub; late subscribers miss earlier events."""

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    async def publish(self, channel: str, event: str, data: dict) -> dict:
        envelope = make_event(event, data)
        await self.backend.publish(REDIS_ROOM_CHANNEL.format(room_id=channel), json.dumps(envelope))
        return envelope

    def subscribe(self, channels: Iterable[str], last_timestamp: Optional[int] = None) -> Subscription:
        return PubSubSubscription(self.backend, channels)


class PollingSubscription(Subscription):
    """Reads the tail of each channel's ring buffer and advances a per-channel cursor.

    The cursor is the highest delivered timestamp plus the ids already
    delivered at exactly that timestamp, so events sharing a millisecond are
    neither lost nor repeated.
    """

    def __init__(self, backend: RedisBackend, channels: Iterable[str], last_timestamp: Optional[int],
                 poll_interval: float, limit: int):
        super().__init__(channels)
        self.backend = backend
        self.poll_interval = poll_interval
        self.limit = limit
        start = now_ms() if last_timestamp is None else int(last_timestamp)
        self.cursors = {channel: (start, set()) for channel in self.channels}
        self._next_poll = 0.0

    async def open(self):
        self.active = True
        logger.debug(f"Polling channels {self.channels} every {self.poll_interval}s")

    async def _poll_channel(self, channel: str) -> list[dict]:
        raw_entries = await self.backend.lrange(REDIS_REALTIME_KEY.format(channel=channel), -self.limit, -1)
        cursor, seen = self.cursors[channel]
        fresh = []
        for raw in raw_entries:
            event = parse_event(raw, channel)
            if event is None:
                continue
            ts = event["timestamp"]
            if ts > cursor or (ts == cursor and event.get("id") not in seen):
                fresh.append(event)
        # Stable sort keeps insertion order for equal timestamps
        fresh.sort(key=lambda e: e["timestamp"])
        for event in fresh:
            if event["timestamp"] > cursor:
                cursor, seen = event["timestamp"], set()
            seen.add(event.get("id"))
        self.cursors[channel] = (cursor, seen)
        return fresh

    async def next_events(self, timeout: float) -> list[dict]:
        if not self.active:
            return []
        loop = asyncio.get_running_loop()
        wait = self._next_poll - loop.time()
        if wait > timeout:
            await asyncio.sleep(max(timeout, 0.0))
            return []
        if wait > 0:
            await asyncio.sleep(wait)
        self._next_poll = loop.time() + self.poll_interval
        events = []
        for channel in self.channels:
            if not self.active:
                return []
            events.extend(await self._poll_channel(channel))
        return events

    async def close(self):
        self.active = False
        logger.debug(f"Stopped polling channels {self.channels}")


class PollingBus(RealtimeBus):
    """Persists events to a capped, expiring list that subscribers poll."""

    def __init__(self, backend: RedisBackend, poll_interval: float = REALTIME_POLL_INTERVAL,
                 limit: int = REALTIME_HISTORY_LIMIT, history_ttl: int = REALTIME_HISTORY_TTL):
        self.backend = backend
        self.poll_interval = poll_interval
        self.limit = limit
        self.history_ttl = history_ttl

    async def publish(self, channel: str, event: str, data: dict) -> dict:
        envelope = make_event(event, data)
        key = REDIS_REALTIME_KEY.format(channel=channel)
        await self.backend.append_capped(key, json.dumps(envelope), self.limit, self.history_ttl)
        logger.debug(f"Appended {event} to {key}")
        return envelope

    def subscribe(self, channels: Iterable[str], last_timestamp: Optional[int] = None) -> Subscription:
        return PollingSubscription(self.backend, channels, last_timestamp, self.poll_interval, self.limit)

    def retained_history(self, channel: str, final_event: dict) -> dict:
        # Only the final event survives, so late pollers learn of the teardown
        # without being able to replay anything published before it
        key = REDIS_REALTIME_KEY.format(channel=channel)
        return {key: (json.dumps(final_event), self.history_ttl)}


def make_bus(backend: RedisBackend, strategy: str = REALTIME_STRATEGY) -> RealtimeBus:
    if strategy == "pubsub":
        return PubSubBus(backend)
    if strategy == "poll":
        return PollingBus(backend)
    raise ValueError(f"Unknown realtime strategy: {strategy}")
