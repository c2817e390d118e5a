from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from logging_config import get_logger
from routers.deps import RoomAuth, get_services, require_room_token, set_auth_cookie
from schemas.rooms import (
    CreateRoomRequest,
    CreateRoomResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    OwnerStatusResponse,
    RoomTtlResponse,
)
from services import ChatServices

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/room", tags=["rooms"])


@rooms_router.post("/create", response_model=CreateRoomResponse)
async def create_room(
    response: Response,
    request: Request,
    room: Optional[CreateRoomRequest] = None,
    services: ChatServices = Depends(get_services),
):
    # Body is optional; {"ttlSeconds": 600} overrides the default lifetime
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    room_id, owner_token = await services.rooms.create(room.ttl_seconds if room else None)
    set_auth_cookie(response, owner_token)
    return CreateRoomResponse(room_id=room_id, owner_token=owner_token)


@rooms_router.post("/join", response_model=JoinRoomResponse)
async def join_room(
    join_room_request: JoinRoomRequest,
    response: Response,
    request: Request,
    services: ChatServices = Depends(get_services),
):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Join room request for {join_room_request.room_id} from {client_host}")
    user_token = await services.rooms.join(join_room_request.room_id)
    set_auth_cookie(response, user_token)
    return JoinRoomResponse(success=True, room_id=join_room_request.room_id, user_token=user_token)


@rooms_router.get("/sudo", response_model=OwnerStatusResponse)
async def owner_status(auth: RoomAuth = Depends(require_room_token)):
    return OwnerStatusResponse(owner=auth.is_owner)


@rooms_router.get("/ttl", response_model=RoomTtlResponse)
async def room_ttl(
    auth: RoomAuth = Depends(require_room_token),
    services: ChatServices = Depends(get_services),
):
    return RoomTtlResponse(ttl=await services.rooms.get_remaining_ttl(auth.room_id))


@rooms_router.delete("", status_code=204)
async def destroy_room(
    auth: RoomAuth = Depends(require_room_token),
    services: ChatServices = Depends(get_services),
):
    # Publishes chat.destroy, then removes meta, members, messages and aux keys
    await services.rooms.destroy(auth.room_id, auth.token)
    return Response(status_code=204)
