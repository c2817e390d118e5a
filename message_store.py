import uuid
from typing import Optional

from backend import RedisBackend
from errors import RoomNotFound, Unauthorized
from logging_config import get_logger
from realtime_bus import CHAT_DELETE, CHAT_MESSAGE, RealtimeBus, now_ms
from redis_keys import REDIS_MESSAGES_KEY, REDIS_META_KEY, ttl_linked_keys
from room_lifecycle import RoomLifecycle
from schemas.messages import Message
from token_authority import TokenAuthority, TokenRole

logger = get_logger(__name__)


class MessageStore:
    """Room-scoped message log.

    Records are stored with the author's token so that ``list`` can tell a
    requester which messages are theirs; the token never leaves the server
    for anyone else.
    """

    def __init__(self, backend: RedisBackend, rooms: RoomLifecycle, tokens: TokenAuthority, bus: RealtimeBus):
        self.backend = backend
        self.rooms = rooms
        self.tokens = tokens
        self.bus = bus

    async def append(self, room_id: str, sender: str, text: str, author_token: str,
                     reply_to: Optional[str] = None, encrypted: Optional[bool] = None) -> Message:
        message = Message(
            id=uuid.uuid4().hex,
            sender=sender,
            text=text,
            timestamp=now_ms(),
            room_id=room_id,
            reply_to=reply_to,
            encrypted=encrypted,
            token=author_token,
        )
        record = message.model_dump_json(by_alias=True, exclude_none=True)
        # Linked keys get the room's remaining TTL, never more; nothing is
        # written if the room disappears before the push commits
        length = await self.backend.rpush_if_exists(
            REDIS_META_KEY.format(room_id=room_id),
            REDIS_MESSAGES_KEY.format(room_id=room_id),
            record,
            ttl_linked_keys(room_id),
        )
        if length is None:
            logger.info(f"Post message failed: Room {room_id} not found")
            raise RoomNotFound(room_id)

        public = message.model_copy(update={"token": None})
        await self.bus.publish(room_id, CHAT_MESSAGE, public.model_dump(by_alias=True, exclude_none=True))
        logger.debug(f"Message {message.id} appended to room {room_id}")
        return public

    async def _records(self, room_id: str) -> list[tuple[str, Message]]:
        records = []
        for raw in await self.backend.lrange(REDIS_MESSAGES_KEY.format(room_id=room_id)):
            try:
                records.append((raw, Message.model_validate_json(raw)))
            except ValueError as e:
                logger.error(f"Skipping unreadable message record in room {room_id}: {e}")
        return records

    async def list(self, room_id: str, requester_token: str) -> list[Message]:
        await self.rooms.require(room_id)
        messages = []
        for _, message in await self._records(room_id):
            if message.token != requester_token:
                message = message.model_copy(update={"token": None})
            messages.append(message)
        return messages

    async def delete(self, room_id: str, message_id: str, requester_token: str) -> int:
        room = await self.rooms.require(room_id)
        if self.tokens.classify(requester_token, room) is not TokenRole.OWNER:
            logger.info(f"Delete message {message_id} in room {room_id} refused: requester is not the owner")
            raise Unauthorized("Only the room owner can delete messages")

        key = REDIS_MESSAGES_KEY.format(room_id=room_id)
        removed = 0
        for raw, message in await self._records(room_id):
            if message.id == message_id:
                removed += await self.backend.lrem(key, raw)

        if removed:
            await self.bus.publish(room_id, CHAT_DELETE, {"id": message_id})
        logger.info(f"Deleted message {message_id} from room {room_id} ({removed} records)")
        return removed
