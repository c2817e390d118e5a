"""Shared fixtures: an isolated in-memory Redis per test, services wired on top of it,
and an HTTP client bound to an app that uses those services."""

import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient

from app import create_app
from backend import RedisBackend
from constants import AUTH_COOKIE_NAME
from realtime_bus import PollingBus
from services import build_services


@pytest_asyncio.fixture()
async def redis_client():
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


@pytest_asyncio.fixture()
async def backend(redis_client):
    return RedisBackend(redis_client)


@pytest_asyncio.fixture()
async def services(backend):
    return build_services(backend, strategy="pubsub")


@pytest_asyncio.fixture()
async def poll_services(backend):
    # Poll quickly so tests don't wait on the production interval
    return build_services(backend, bus=PollingBus(backend, poll_interval=0.01))


@pytest_asyncio.fixture()
async def client(services):
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def use_token(client, token):
    """Make the next requests carry ``token`` as the auth cookie."""
    client.cookies.clear()
    client.cookies.set(AUTH_COOKIE_NAME, token)
