from typing import Optional

from pydantic import Field

from schemas.messages import CamelModel


class CreateRoomRequest(CamelModel):
    ttl_seconds: Optional[int] = Field(None, ge=1)

class CreateRoomResponse(CamelModel):
    room_id: str
    owner_token: str

class JoinRoomRequest(CamelModel):
    room_id: str = Field(..., min_length=1)

class JoinRoomResponse(CamelModel):
    success: bool
    room_id: str
    user_token: str

class OwnerStatusResponse(CamelModel):
    owner: bool

class RoomTtlResponse(CamelModel):
    ttl: int

class ErrorResponse(CamelModel):
    error: str
    detail: Optional[str] = None
