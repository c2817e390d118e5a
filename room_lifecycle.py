import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from backend import RedisBackend
from constants import MAX_ROOM_TTL_SECONDS, ROOM_TTL_SECONDS
from errors import BadRequest, RoomNotFound, Unauthorized
from logging_config import get_logger
from realtime_bus import CHAT_DESTROY, RealtimeBus, now_ms
from redis_keys import REDIS_CONNECTED_KEY, REDIS_META_KEY, room_keys
from token_authority import TokenAuthority, TokenKind, TokenRole

logger = get_logger(__name__)


@dataclass(frozen=True)
class Room:
    room_id: str
    owner_token: str
    connected_tokens: frozenset = field(default_factory=frozenset)
    created_at: int = 0
    ttl: int = 0


@dataclass(frozen=True)
class Absent:
    """A room that was never created, has expired, or was destroyed."""

    room_id: str


RoomState = Union[Room, Absent]


class RoomLifecycle:
    def __init__(self, backend: RedisBackend, tokens: TokenAuthority, bus: RealtimeBus,
                 default_ttl: int = ROOM_TTL_SECONDS, max_ttl: int = MAX_ROOM_TTL_SECONDS):
        self.backend = backend
        self.tokens = tokens
        self.bus = bus
        self.default_ttl = default_ttl
        self.max_ttl = max_ttl

    async def create(self, ttl_seconds: Optional[int] = None) -> tuple[str, str]:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if not 1 <= ttl <= self.max_ttl:
            raise BadRequest(f"ttlSeconds must be between 1 and {self.max_ttl}")

        room_id = uuid.uuid4().hex
        owner_token = self.tokens.issue(TokenKind.OWNER)
        await self.backend.create_hash(
            REDIS_META_KEY.format(room_id=room_id),
            {"owner": owner_token, "createdAt": now_ms()},
            ttl,
            set_key=REDIS_CONNECTED_KEY.format(room_id=room_id),
            members=[owner_token],
        )
        logger.info(f"Room {room_id} created with TTL {ttl} seconds")
        return room_id, owner_token

    async def lookup(self, room_id: str) -> RoomState:
        meta, connected, ttl = await self.backend.hash_snapshot(
            REDIS_META_KEY.format(room_id=room_id),
            REDIS_CONNECTED_KEY.format(room_id=room_id),
        )
        if not meta or ttl == -2:
            logger.debug(f"Room {room_id} is absent")
            return Absent(room_id)
        return Room(
            room_id=room_id,
            owner_token=str(meta.get("owner", "")),
            connected_tokens=frozenset(connected),
            created_at=int(meta.get("createdAt", 0)),
            ttl=max(ttl, 0),
        )

    async def require(self, room_id: str) -> Room:
        state = await self.lookup(room_id)
        if isinstance(state, Absent):
            raise RoomNotFound(room_id)
        return state

    async def join(self, room_id: str) -> str:
        member_token = self.tokens.issue(TokenKind.MEMBER)
        admitted = await self.backend.add_to_set_if_exists(
            REDIS_META_KEY.format(room_id=room_id),
            REDIS_CONNECTED_KEY.format(room_id=room_id),
            member_token,
        )
        if not admitted:
            logger.info(f"Join room failed: Room {room_id} not found")
            raise RoomNotFound(room_id)
        logger.info(f"Member joined room {room_id}")
        return member_token

    async def get_owner_status(self, room_id: str, token: str) -> bool:
        state = await self.lookup(room_id)
        if isinstance(state, Absent):
            return False
        return self.tokens.classify(token, state) is TokenRole.OWNER

    async def get_remaining_ttl(self, room_id: str) -> int:
        ttl = await self.backend.ttl(REDIS_META_KEY.format(room_id=room_id))
        return ttl if ttl > 0 else 0

    async def destroy(self, room_id: str, token: str):
        room = await self.require(room_id)
        if self.tokens.classify(token, room) is not TokenRole.OWNER:
            logger.info(f"Destroy room {room_id} refused: requester is not the owner")
            raise Unauthorized("Only the room owner can destroy the room")

        # Subscribers must see the destroy event before the keys disappear
        final_event = await self.bus.publish(room_id, CHAT_DESTROY, {"isDestroyed": True})
        removed = await self.backend.delete(
            *room_keys(room_id), replace_lists=self.bus.retained_history(room_id, final_event)
        )
        logger.info(f"Room {room_id} destroyed by owner ({removed} keys removed)")
