"""Wiring for the feed core services; everything is passed explicitly."""
from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedcore.repositories import (
    FollowRepository,
    PostReadRepository,
    UserPreferenceRepository,
    UserRepository,
)
from feedcore.services.activity import UserActivityService
from feedcore.services.bloom_filter import BloomFilterService
from feedcore.services.fanout import FeedFanoutService
from feedcore.services.feed_core import FeedCoreService, Publisher
from feedcore.services.feed_read import FeedReadService
from feedcore.services.feed_store import RedisFeedStore
from feedcore.services.post_views import PostViewService


@dataclass
class Services:
    feed_store: RedisFeedStore
    activity: UserActivityService
    feed_core: FeedCoreService
    feed_read: FeedReadService
    fanout: FeedFanoutService
    post_views: PostViewService


def build_services(
    redis: aioredis.Redis,
    session_factory: async_sessionmaker[AsyncSession],
    event_bus: Publisher,
) -> Services:
    feed_store = RedisFeedStore(redis)
    activity = UserActivityService(redis, feed_store)
    follows = FollowRepository(session_factory)
    feed_core = FeedCoreService(
        users=UserRepository(session_factory),
        preferences=UserPreferenceRepository(session_factory),
        follows=follows,
        posts=PostReadRepository(session_factory),
        event_bus=event_bus,
        redis=redis,
        feed_store=feed_store,
    )
    return Services(
        feed_store=feed_store,
        activity=activity,
        feed_core=feed_core,
        feed_read=FeedReadService(feed_core, activity, redis),
        fanout=FeedFanoutService(follows, feed_store),
        post_views=PostViewService(BloomFilterService(redis)),
    )
