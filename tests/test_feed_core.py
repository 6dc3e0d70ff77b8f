import asyncio

import pytest

from feedcore.cache_keys import CacheKeys
from feedcore.config import settings
from feedcore.errors import ErrorKind, NotFoundError
from feedcore.events import ColdStartFeedGenerated
from feedcore.services.feed_core import FeedCoreService
from feedcore.services.feed_store import RedisFeedStore

from fakes import (
    BrokenRedis,
    FakeEventBus,
    FakeFollows,
    FakePosts,
    FakePreferences,
    FakeUsers,
    StalledEventBus,
)


def make_service(redis, *, following=None, tags=None, posts=None, event_bus=None, feed_store=None):
    follows = FakeFollows(following)
    service = FeedCoreService(
        users=FakeUsers("alice", "bob", "carol"),
        preferences=FakePreferences(tags),
        follows=follows,
        posts=posts or FakePosts(),
        event_bus=event_bus or FakeEventBus(),
        redis=redis,
        feed_store=feed_store or RedisFeedStore(redis),
    )
    return service, follows


@pytest.mark.asyncio
async def test_unknown_viewer_is_not_found(fake_redis):
    service, _ = make_service(fake_redis)
    with pytest.raises(NotFoundError) as exc_info:
        await service.generate_personalized_core_feed("mallory", 10)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_cold_start_publishes_once_on_first_page(fake_redis):
    posts, bus = FakePosts(), FakeEventBus()
    service, _ = make_service(fake_redis, posts=posts, event_bus=bus)

    first = await service.generate_personalized_core_feed("alice", 10)
    assert [p.post_id for p in first.data] == ["p1"]
    assert first.has_more is True

    second = await service.generate_personalized_core_feed("alice", 10, first.next_cursor)
    assert [p.post_id for p in second.data] == ["p2"]
    await service.drain_publishes()

    assert len(bus.events) == 1
    event = bus.events[0]
    assert isinstance(event, ColdStartFeedGenerated)
    assert event.user_id == "alice"
    assert event.topic == settings.kafka_topic_cold_start
    assert posts.ranked_calls == [([], 10, None), ([], 10, "next-page")]
    assert posts.core_calls == []


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_the_feed(fake_redis, caplog):
    service, _ = make_service(fake_redis, event_bus=FakeEventBus(fail=True))

    page = await service.generate_personalized_core_feed("alice", 5)
    assert [p.post_id for p in page.data] == ["p1"]

    await service.drain_publishes()
    assert "Failed to publish cold-start event for alice" in caplog.text


@pytest.mark.asyncio
async def test_slow_broker_does_not_hold_the_feed(fake_redis):
    bus = StalledEventBus()
    service, _ = make_service(fake_redis, event_bus=bus)

    page = await asyncio.wait_for(service.generate_personalized_core_feed("alice", 10), timeout=1)

    assert [p.post_id for p in page.data] == ["p1"]
    assert bus.events == []

    bus.release.set()
    await service.drain_publishes()
    assert [e.user_id for e in bus.events] == ["alice"]


@pytest.mark.asyncio
async def test_personalized_query_uses_followees_and_tags(fake_redis):
    posts, bus = FakePosts(), FakeEventBus()
    service, _ = make_service(
        fake_redis,
        following={"alice": ["bob", "carol"]},
        tags={"alice": ["python", "redis"]},
        posts=posts,
        event_bus=bus,
    )

    page = await service.generate_personalized_core_feed("alice", 20)

    assert [p.post_id for p in page.data] == ["p1"]
    assert posts.core_calls == [(["bob", "carol"], ["python", "redis"], 20, None)]
    assert posts.ranked_calls == []
    assert bus.events == []


@pytest.mark.asyncio
async def test_tags_alone_are_not_a_cold_start(fake_redis):
    posts, bus = FakePosts(), FakeEventBus()
    service, _ = make_service(fake_redis, tags={"alice": ["python"]}, posts=posts, event_bus=bus)

    await service.generate_personalized_core_feed("alice", 20)

    assert posts.core_calls == [([], ["python"], 20, None)]
    assert bus.events == []


@pytest.mark.asyncio
async def test_following_ids_are_cached_briefly(fake_redis):
    service, follows = make_service(fake_redis, following={"alice": ["bob"]})

    await service.generate_personalized_core_feed("alice", 10)
    await service.generate_personalized_core_feed("alice", 10)

    assert follows.calls == 1
    ttl = await fake_redis.ttl(CacheKeys.following_ids("alice"))
    assert 0 < ttl <= settings.following_ids_ttl


@pytest.mark.asyncio
async def test_following_ids_fall_back_to_store_when_cache_is_down(fake_redis):
    broken = BrokenRedis()
    posts = FakePosts()
    service, follows = make_service(
        broken, following={"alice": ["bob"]}, posts=posts, feed_store=RedisFeedStore(fake_redis)
    )

    await service.generate_personalized_core_feed("alice", 10)
    await service.generate_personalized_core_feed("alice", 10)

    assert follows.calls == 2
    assert posts.core_calls[0][0] == ["bob"]


@pytest.mark.asyncio
async def test_ranked_query_failure_degrades_to_empty_page(fake_redis):
    service, _ = make_service(fake_redis, following={"alice": ["bob"]}, posts=FakePosts(fail=True))

    page = await service.generate_personalized_core_feed("alice", 10)

    assert page.data == []
    assert page.has_more is False
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_for_you_reads_the_mailbox(fake_redis, feed_store):
    await feed_store.add_to_feed("alice", "p1", 10)
    await feed_store.add_to_feed("alice", "p2", 20)
    service, _ = make_service(fake_redis, feed_store=feed_store)

    page = await service.get_for_you_feed("alice", 10)
    assert page.ids == ["p2", "p1"]


@pytest.mark.asyncio
async def test_sorted_set_reads_degrade_when_redis_is_down():
    broken = BrokenRedis()
    service, _ = make_service(broken)

    for_you = await service.get_for_you_feed("alice", 10)
    trending = await service.get_trending_feed(10)

    assert for_you.ids == [] and for_you.has_more is False
    assert trending.ids == [] and trending.next_cursor is None
