from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Query, Request, Response

from constants import AUTH_COOKIE_NAME, AUTH_COOKIE_SECURE
from errors import Unauthorized
from logging_config import get_logger
from room_lifecycle import Room
from services import ChatServices
from token_authority import TokenRole

logger = get_logger(__name__)


@dataclass
class RoomAuth:
    room: Room
    token: str
    role: TokenRole

    @property
    def room_id(self) -> str:
        return self.room.room_id

    @property
    def is_owner(self) -> bool:
        return self.role is TokenRole.OWNER


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


def set_auth_cookie(response: Response, token: str):
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        path="/",
        httponly=True,
        secure=AUTH_COOKIE_SECURE,
        samesite="strict",
    )


async def require_room_token(
    request: Request,
    room_id: str = Query(..., alias="roomId", min_length=1),
    token: Optional[str] = Cookie(None, alias=AUTH_COOKIE_NAME),
) -> RoomAuth:
    """Resolve the bearer cookie against the room named in the query string."""
    if not token:
        logger.info(f"Request for room {room_id} without auth cookie from {request.client.host if request.client else 'unknown'}")
        raise Unauthorized("Missing auth token")

    services = get_services(request)
    room = await services.rooms.require(room_id)
    role = services.tokens.classify(token, room)
    if role is TokenRole.UNAUTHORIZED:
        logger.info(f"Token not admitted to room {room_id}")
        raise Unauthorized("Token is not valid for this room")
    return RoomAuth(room=room, token=token, role=role)
