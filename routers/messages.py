from fastapi import APIRouter, Depends

from logging_config import get_logger
from routers.deps import RoomAuth, get_services, require_room_token
from schemas.messages import (
    DeleteMessageRequest,
    DeleteMessageResponse,
    Message,
    MessagesResponse,
    PostMessageRequest,
)
from services import ChatServices

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/messages", tags=["messages"])


@messages_router.post("", response_model=Message, response_model_exclude_none=True)
async def post_message(
    body: PostMessageRequest,
    auth: RoomAuth = Depends(require_room_token),
    services: ChatServices = Depends(get_services),
):
    return await services.messages.append(
        auth.room_id,
        sender=body.sender,
        text=body.text,
        author_token=auth.token,
        reply_to=body.reply_to,
        encrypted=body.encrypted,
    )


@messages_router.get("", response_model=MessagesResponse, response_model_exclude_none=True)
async def list_messages(
    auth: RoomAuth = Depends(require_room_token),
    services: ChatServices = Depends(get_services),
):
    messages = await services.messages.list(auth.room_id, auth.token)
    logger.debug(f"Listing {len(messages)} messages for room {auth.room_id}")
    return MessagesResponse(messages=messages)


@messages_router.delete("", response_model=DeleteMessageResponse)
async def delete_message(
    body: DeleteMessageRequest,
    auth: RoomAuth = Depends(require_room_token),
    services: ChatServices = Depends(get_services),
):
    await services.messages.delete(auth.room_id, body.id, auth.token)
    return DeleteMessageResponse(success=True)
