import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from feedcore.clients.redis_client import set_redis_client
from feedcore.database import Base, create_session_factory
from feedcore.services.feed_store import RedisFeedStore

from fakes import FakeClock


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(None)
        await client.flushall()
        await client.aclose()


@pytest.fixture
def feed_store(fake_redis):
    return RedisFeedStore(fake_redis)


@pytest_asyncio.fixture
async def session_factory():
    from feedcore import models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()
