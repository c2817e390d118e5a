import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional

from constants import HEARTBEAT_SECONDS
from errors import BadRequest, StoreUnavailable
from logging_config import get_logger
from realtime_bus import RealtimeBus, Subscription

logger = get_logger(__name__)

KEEPALIVE_FRAME = ": keepalive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
}


def format_frame(event: dict) -> str:
    payload = json.dumps({"event": event["event"], "data": event["data"]})
    return f"data: {payload}\n\n"


class EventGateway:
    """Turns bus subscriptions into server-sent-event streams."""

    def __init__(self, bus: RealtimeBus, heartbeat_seconds: float = HEARTBEAT_SECONDS, tick_seconds: float = 1.0):
        self.bus = bus
        self.heartbeat_seconds = heartbeat_seconds
        self.tick_seconds = tick_seconds

    async def open_stream(self, channels: Iterable[str], events: Iterable[str], last_timestamp: Optional[int] = None,
                          is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None) -> AsyncIterator[str]:
        """Validate the request, open the subscription and return the frame iterator.

        Both happen before any response bytes are sent, so a bad request is
        reported as a 400 and an unreachable store as a 503, never as an empty
        stream. StoreUnavailable from the subscription propagates to the caller.
        """
        channels = [c for c in (channels or []) if c]
        events = [e for e in (events or []) if e]
        if not channels or not events:
            raise BadRequest("Missing channels or events parameter")

        subscription = self.bus.subscribe(channels, last_timestamp)
        try:
            await subscription.open()
        except StoreUnavailable as e:
            logger.error(f"Could not open event stream for channels {channels}: {e}")
            raise
        logger.info(f"Event stream opened for channels {channels}, events {sorted(events)}")
        return self._frames(subscription, set(events), is_disconnected)

    async def _frames(self, subscription: Subscription, events: set[str],
                      is_disconnected: Optional[Callable[[], Awaitable[bool]]]) -> AsyncIterator[str]:
        channels = subscription.channels
        loop = asyncio.get_running_loop()
        delivered = 0
        try:
            next_heartbeat = loop.time() + self.heartbeat_seconds
            while subscription.active:
                if is_disconnected is not None and await is_disconnected():
                    logger.info(f"Client disconnected from channels {channels}")
                    break

                timeout = min(self.tick_seconds, max(next_heartbeat - loop.time(), 0.0))
                try:
                    batch = await subscription.next_events(timeout)
                except StoreUnavailable as e:
                    logger.error(f"Event stream for channels {channels} lost its subscription: {e}")
                    break

                for event in batch:
                    if not subscription.active:
                        break
                    if event["event"] not in events:
                        continue
                    try:
                        frame = format_frame(event)
                    except (TypeError, ValueError) as e:
                        logger.error(f"Dropping unencodable event on channel {event.get('channel')}: {e}")
                        continue
                    delivered += 1
                    yield frame

                if subscription.active and loop.time() >= next_heartbeat:
                    yield KEEPALIVE_FRAME
                    next_heartbeat = loop.time() + self.heartbeat_seconds
        finally:
            await subscription.close()
            logger.info(f"Event stream closed for channels {channels} after {delivered} events")
