from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from event_gateway import SSE_HEADERS
from logging_config import get_logger
from routers.deps import get_services
from services import ChatServices

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


def _split(value: Optional[str]) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@realtime_router.get("/realtime")
async def realtime_stream(
    request: Request,
    channels: Optional[str] = Query(None, description="Comma separated room ids"),
    events: Optional[str] = Query(None, description="Comma separated event names"),
    last_timestamp: Optional[int] = Query(None, alias="lastTimestamp", description="Resume cursor (poll strategy)"),
    services: ChatServices = Depends(get_services),
):
    frames = await services.gateway.open_stream(
        _split(channels),
        _split(events),
        last_timestamp=last_timestamp,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
