from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(CamelModel):
    id: str
    sender: str
    text: str
    timestamp: int
    room_id: str
    reply_to: Optional[str] = None
    encrypted: Optional[bool] = None
    token: Optional[str] = None

class PostMessageRequest(CamelModel):
    sender: str = Field(..., min_length=1, max_length=100)
    text: str = Field(..., min_length=1, max_length=1000)
    reply_to: Optional[str] = None
    encrypted: Optional[bool] = None

class DeleteMessageRequest(CamelModel):
    id: str

class MessagesResponse(CamelModel):
    messages: list[Message]

class DeleteMessageResponse(CamelModel):
    success: bool
