"""
Cached read path for the personalized feed.

Core-feed pages are cached per (user, cursor, limit). The TTL follows
platform activity: a busy platform invalidates pages within minutes, a quiet
one keeps them for hours.
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from feedcore.cache_keys import CacheKeys
from feedcore.clients.redis_client import get_json, set_json
from feedcore.config import settings
from feedcore.schemas import PostPage
from feedcore.services.activity import UserActivityService
from feedcore.services.feed_core import FeedCoreService

logger = logging.getLogger(__name__)


def clamp_limit(limit: Optional[int]) -> int:
    if not limit:
        return settings.feed_page_size
    return max(1, min(settings.feed_max_page_size, int(limit)))


class FeedReadService:
    def __init__(
        self,
        feed_core: FeedCoreService,
        activity: UserActivityService,
        redis: aioredis.Redis,
    ) -> None:
        self._feed_core = feed_core
        self._activity = activity
        self._redis = redis

    async def get_personalized_feed(
        self, user_id: str, limit: Optional[int] = None, cursor: Optional[str] = None
    ) -> PostPage:
        safe_limit = clamp_limit(limit)
        key = CacheKeys.core_feed(user_id, cursor, safe_limit)

        try:
            cached = await get_json(self._redis, key)
        except (RedisError, ValueError) as exc:
            logger.warning("Core feed cache read failed for %s: %s", user_id, exc)
            cached = None
        if cached is not None:
            logger.debug("Core feed cache hit %s", key)
            return PostPage.model_validate(cached)

        page = await self._feed_core.generate_personalized_core_feed(user_id, safe_limit, cursor)
        # An empty page may be a degraded read; don't pin it in the cache.
        if page.data:
            ttl = await self._activity.calculate_dynamic_ttl()
            try:
                await set_json(self._redis, key, page.model_dump(mode="json"), ttl)
            except RedisError as exc:
                logger.warning("Core feed cache write failed for %s: %s", user_id, exc)
        return page
