import httpx
import pytest
import pytest_asyncio

from feedcore.main import app
from feedcore.models import User
from feedcore.services import build_services

from fakes import FakeEventBus


@pytest.fixture
def event_bus():
    return FakeEventBus()


@pytest_asyncio.fixture
async def client(fake_redis, session_factory, event_bus):
    async with session_factory() as session:
        session.add(User(user_id="alice", username="alice"))
        await session.commit()

    app.state.services = build_services(fake_redis, session_factory, event_bus)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.services


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "feed-core"}


@pytest.mark.asyncio
async def test_core_feed_for_unknown_user_is_404(client):
    resp = await client.get("/feed/core", params={"user_id": "mallory"})
    assert resp.status_code == 404
    assert resp.json() == {"type": "NotFoundError", "detail": "User not found"}


@pytest.mark.asyncio
async def test_core_feed_cold_start(client, event_bus):
    resp = await client.get("/feed/core", params={"user_id": "alice", "limit": 5})
    assert resp.status_code == 200
    assert resp.json() == {"data": [], "has_more": False, "next_cursor": None}
    await app.state.services.feed_core.drain_publishes()
    assert [e.user_id for e in event_bus.events] == ["alice"]


@pytest.mark.asyncio
async def test_for_you_and_trending(client, fake_redis):
    store = app.state.services.feed_store
    await store.add_to_feed("alice", "p1", 1)
    await store.add_to_feed("alice", "p2", 2)
    await store.update_trending_score("p9", 50)

    resp = await client.get("/feed/for-you", params={"user_id": "alice", "limit": 1})
    body = resp.json()
    assert resp.status_code == 200
    assert body["ids"] == ["p2"]
    assert body["has_more"] is True

    resp = await client.get(
        "/feed/for-you", params={"user_id": "alice", "limit": 1, "cursor": body["next_cursor"]}
    )
    assert resp.json()["ids"] == ["p1"]

    resp = await client.get("/feed/trending")
    assert resp.json()["ids"] == ["p9"]


@pytest.mark.asyncio
async def test_invalid_cursor_is_400(client):
    resp = await client.get("/feed/for-you", params={"user_id": "alice", "cursor": "@@@"})
    assert resp.status_code == 400
    assert resp.json()["type"] == "ValidationError"


@pytest.mark.asyncio
async def test_non_positive_limit_is_rejected(client):
    resp = await client.get("/feed/trending", params={"limit": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_views_are_new_only_once(client):
    payload = {"user_id": "alice", "post_ids": ["p1", "p2"]}

    first = await client.post("/feed/views", json=payload)
    assert first.status_code == 200
    assert first.json() == {"user_id": "alice", "new_views": ["p1", "p2"]}

    second = await client.post("/feed/views", json={"user_id": "alice", "post_ids": ["p2", "p3"]})
    assert second.json()["new_views"] == ["p3"]


@pytest.mark.asyncio
async def test_views_require_post_ids(client):
    resp = await client.post("/feed/views", json={"user_id": "alice", "post_ids": []})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_activity_endpoint(client):
    resp = await client.get("/feed/activity")
    assert resp.status_code == 200
    assert resp.json() == {"level": "dormant", "cache_ttl_seconds": 7200, "cache_ttl_human": "2h"}
