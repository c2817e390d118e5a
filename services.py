from dataclasses import dataclass
from typing import Optional

from backend import RedisBackend
from constants import HEARTBEAT_SECONDS, REALTIME_STRATEGY
from event_gateway import EventGateway
from message_store import MessageStore
from realtime_bus import RealtimeBus, make_bus
from room_lifecycle import RoomLifecycle
from token_authority import TokenAuthority


@dataclass
class ChatServices:
    backend: RedisBackend
    tokens: TokenAuthority
    bus: RealtimeBus
    rooms: RoomLifecycle
    messages: MessageStore
    gateway: EventGateway


def build_services(backend: RedisBackend, strategy: str = REALTIME_STRATEGY,
                   heartbeat_seconds: float = HEARTBEAT_SECONDS, bus: Optional[RealtimeBus] = None) -> ChatServices:
    tokens = TokenAuthority()
    bus = bus or make_bus(backend, strategy)
    rooms = RoomLifecycle(backend, tokens, bus)
    return ChatServices(
        backend=backend,
        tokens=tokens,
        bus=bus,
        rooms=rooms,
        messages=MessageStore(backend, rooms, tokens, bus),
        gateway=EventGateway(bus, heartbeat_seconds=heartbeat_seconds),
    )
