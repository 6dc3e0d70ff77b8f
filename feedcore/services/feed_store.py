"""
Sorted-set feed store.

  feed:{feed_type}:{subject_id}  ZSET  score = rank (timestamp or trend score)
                                       member = post_id
  trending:posts                 ZSET  score = trend score, member = post_id

Writes for one call are sent as a single MULTI so a fan-out of one post to N
followers is one round trip. Reads page by cursor: the cursor carries the
(score, post_id) of the last item returned, and the next page is everything
strictly after it in (score DESC, post_id DESC) order. Redis already orders
equal scores by member descending for ZREVRANGEBYSCORE, so the explicit
member comparison on the boundary score gives a total order and the pages
neither skip nor repeat entries.
"""
import logging
import math
from typing import Optional

import redis.asyncio as aioredis

from feedcore.cache_keys import FOR_YOU, CacheKeys
from feedcore.config import settings
from feedcore.cursor import cursor_position, decode_cursor, encode_cursor
from feedcore.errors import ValidationError
from feedcore.schemas import FeedIdsPage

logger = logging.getLogger(__name__)


def _after_cursor(score: float, member: str, cursor_score: float, cursor_member: str) -> bool:
    if score < cursor_score:
        return True
    return score == cursor_score and member < cursor_member


class RedisFeedStore:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    # ─────────────────────── Writes ───────────────────────────────────────

    async def add_to_feed(
        self, subject_id: str, post_id: str, score: float, feed_type: str = FOR_YOU
    ) -> None:
        key = CacheKeys.feed(feed_type, subject_id)
        pipe = self._redis.pipeline(transaction=True)
        pipe.zadd(key, {post_id: score})
        pipe.expire(key, settings.feed_ttl)
        await pipe.execute()

    async def add_to_feeds_batch(
        self, subject_ids: list[str], post_id: str, score: float, feed_type: str = FOR_YOU
    ) -> None:
        """Fan-out: write one post into many subjects' feeds in one round trip."""
        if not subject_ids:
            return
        pipe = self._redis.pipeline(transaction=True)
        for subject_id in subject_ids:
            key = CacheKeys.feed(feed_type, subject_id)
            pipe.zadd(key, {post_id: score})
            pipe.expire(key, settings.feed_ttl)
        await pipe.execute()

    async def remove_from_feed(
        self, subject_id: str, post_id: str, feed_type: str = FOR_YOU
    ) -> None:
        await self._redis.zrem(CacheKeys.feed(feed_type, subject_id), post_id)

    async def remove_from_feeds_batch(
        self, subject_ids: list[str], post_id: str, feed_type: str = FOR_YOU
    ) -> None:
        if not subject_ids:
            return
        pipe = self._redis.pipeline(transaction=True)
        for subject_id in subject_ids:
            pipe.zrem(CacheKeys.feed(feed_type, subject_id), post_id)
        await pipe.execute()

    async def invalidate_feed(self, subject_id: str, feed_type: str = FOR_YOU) -> None:
        await self._redis.delete(CacheKeys.feed(feed_type, subject_id))

    async def get_feed_size(self, subject_id: str, feed_type: str = FOR_YOU) -> int:
        return await self._redis.zcard(CacheKeys.feed(feed_type, subject_id))

    # ─────────────────────── Reads ────────────────────────────────────────

    async def get_feed_page(
        self, subject_id: str, page: int, limit: int, feed_type: str = FOR_YOU
    ) -> list[str]:
        """Offset pagination, newest/highest first. Kept for page-numbered clients."""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        # negative offsets would read from the tail of the set
        page = max(1, page)
        key = CacheKeys.feed(feed_type, subject_id)
        start = (page - 1) * limit
        end = start + limit - 1
        logger.debug("get_feed_page key=%s page=%d limit=%d", key, page, limit)
        return await self._redis.zrevrange(key, start, end)

    async def get_feed_with_cursor(
        self,
        subject_id: str,
        limit: int,
        cursor: Optional[str] = None,
        feed_type: str = FOR_YOU,
    ) -> FeedIdsPage:
        key = CacheKeys.feed(feed_type, subject_id)
        return await self._page_by_score(key, limit, cursor, score_field="score")

    async def get_trending_feed_with_cursor(
        self, limit: int, cursor: Optional[str] = None
    ) -> FeedIdsPage:
        return await self._page_by_score(
            settings.trending_key, limit, cursor, score_field="trendScore"
        )

    async def _page_by_score(
        self, key: str, limit: int, cursor: Optional[str], score_field: str
    ) -> FeedIdsPage:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        cursor_score, cursor_member = cursor_position(decode_cursor(cursor))
        upper = "+inf" if math.isinf(cursor_score) else cursor_score

        # Read past the cursor in batches of limit + overfetch. The first batch
        # is almost always enough; further batches only happen when many
        # entries share the boundary score and sort above the cursor member.
        batch = limit + settings.feed_cursor_overfetch
        offset = 0
        kept: list[tuple[str, float]] = []
        while True:
            rows = await self._redis.zrevrangebyscore(
                key, upper, "-inf", start=offset, num=batch, withscores=True
            )
            for member, score in rows:
                if not cursor_member or _after_cursor(score, member, cursor_score, cursor_member):
                    kept.append((member, score))
            if len(kept) > limit or len(rows) < batch:
                break
            offset += batch

        has_more = len(kept) > limit
        page = kept[:limit]
        next_cursor = None
        if has_more:
            last_member, last_score = page[-1]
            next_cursor = encode_cursor({score_field: last_score, "_id": last_member})

        return FeedIdsPage(
            ids=[member for member, _ in page],
            has_more=has_more,
            next_cursor=next_cursor,
        )

    # ─────────────────────── Trending ─────────────────────────────────────

    async def update_trending_score(self, post_id: str, score: float) -> None:
        await self._redis.zadd(settings.trending_key, {post_id: float(score)})

    async def incr_trending_score(self, post_id: str, delta: float) -> float:
        return float(await self._redis.zincrby(settings.trending_key, delta, post_id))

    async def remove_from_trending(self, post_id: str) -> None:
        await self._redis.zrem(settings.trending_key, post_id)

    async def get_trending_range(self, start: int, end: int) -> list[str]:
        return await self._redis.zrevrange(settings.trending_key, start, end)

    async def get_trending_count(self) -> int:
        return await self._redis.zcard(settings.trending_key)

    # ─────────────────────── Primitives ───────────────────────────────────
    # Used by the activity tracker for its recently-active-users set.

    async def zadd(self, key: str, score: float, member: str) -> int:
        return await self._redis.zadd(key, {member: score})

    async def zrange_by_score(self, key: str, min_score: str, max_score: str) -> list[str]:
        return await self._redis.zrangebyscore(key, min_score, max_score)

    async def zrem_range_by_score(self, key: str, min_score: str, max_score: str) -> int:
        return await self._redis.zremrangebyscore(key, min_score, max_score)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self._redis.expire(key, seconds)

    async def add_and_prune(
        self, key: str, score: float, member: str, prune_below: float, ttl: int
    ) -> None:
        """zadd + drop members scored at or below `prune_below` + expire, as one MULTI."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.zadd(key, {member: score})
        pipe.zremrangebyscore(key, "-inf", prune_below)
        pipe.expire(key, ttl)
        await pipe.execute()
