from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import RedisBackend
from constants import CORS_ORIGINS, REALTIME_STRATEGY, REDIS_URL
from errors import ChatError, StoreUnavailable
from logging_config import get_logger
from routers.messages import messages_router
from routers.realtime import realtime_router
from routers.rooms import rooms_router
from services import ChatServices, build_services

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Services injected by the caller (tests) are left alone
    if getattr(app.state, "services", None) is not None:
        yield
        return

    backend = RedisBackend.from_url(REDIS_URL)
    await backend.connect()
    app.state.services = build_services(backend, REALTIME_STRATEGY)
    logger.info(f"EphemeralChat started with realtime strategy '{REALTIME_STRATEGY}'")
    try:
        yield
    finally:
        logger.info("EphemeralChat shutting down")
        await backend.close()
        app.state.services = None


async def chat_error_handler(request: Request, exc: ChatError):
    if isinstance(exc, StoreUnavailable):
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.error}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error, "detail": exc.detail})


def create_app(services: Optional[ChatServices] = None) -> FastAPI:
    app = FastAPI(title="EphemeralChat", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)

    app.include_router(rooms_router)
    app.include_router(messages_router)
    app.include_router(realtime_router)

    @app.get("/health", tags=["health"])
    async def health(request: Request):
        try:
            await request.app.state.services.backend.ping()
            store = "ok"
        except StoreUnavailable:
            store = "unavailable"
        return {"status": "ok", "store": store}

    logger.info("FastAPI application initialized")
    return app


app = create_app()
