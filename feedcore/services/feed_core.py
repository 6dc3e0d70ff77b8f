"""
Personalized feed generation.

  1. Resolve the viewer (NotFoundError if absent).
  2. In parallel: top-weighted interest tags, and followee ids (served from a
     60s Redis cache, falling back to the graph store on miss).
  3. Strategy:
       no follows and no tags → cold start: serve the global ranking and, on
                                the first page only, publish
                                ColdStartFeedGenerated in the background
       otherwise              → personalized query over followees + tags
  4. Both paths return a cursor page from the ranked-query backend.

Feed freshness is best-effort: ranked-query and sorted-set read failures
degrade to an empty page. Cache population and event publication failures
are logged and ignored.
"""
import asyncio
import logging
import time
from typing import Optional, Protocol

import redis.asyncio as aioredis
from opentelemetry import trace
from redis.exceptions import RedisError

from feedcore.cache_keys import FOR_YOU, CacheKeys
from feedcore.clients.redis_client import get_json, set_json
from feedcore.config import settings
from feedcore.errors import DatabaseError, NotFoundError
from feedcore.events import ColdStartFeedGenerated, Event
from feedcore.schemas import FeedIdsPage, PostPage, TagPreference
from feedcore.services.feed_store import RedisFeedStore
from feedcore.telemetry import COLD_START_TOTAL, FEED_DEGRADED_TOTAL, FEED_LATENCY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# ─────────────────────── Collaborators ────────────────────────────────────

class UserLookup(Protocol):
    async def find_by_public_id(self, user_id: str) -> Optional[object]: ...


class TagPreferences(Protocol):
    async def get_top_user_tags(self, user_id: str, limit: Optional[int] = None) -> list[TagPreference]: ...


class FollowGraph(Protocol):
    async def get_following_ids(self, user_id: str) -> list[str]: ...


class RankedPosts(Protocol):
    async def get_ranked_feed_with_cursor(
        self, tags: list[str], limit: int, cursor: Optional[str] = None
    ) -> PostPage: ...

    async def get_feed_for_user_core_with_cursor(
        self, followee_ids: list[str], tags: list[str], limit: int, cursor: Optional[str] = None
    ) -> PostPage: ...


class Publisher(Protocol):
    async def publish(self, event: Event) -> None: ...


# ─────────────────────── Service ──────────────────────────────────────────

class FeedCoreService:
    def __init__(
        self,
        users: UserLookup,
        preferences: TagPreferences,
        follows: FollowGraph,
        posts: RankedPosts,
        event_bus: Publisher,
        redis: aioredis.Redis,
        feed_store: RedisFeedStore,
    ) -> None:
        self._users = users
        self._preferences = preferences
        self._follows = follows
        self._posts = posts
        self._event_bus = event_bus
        self._redis = redis
        self._feed_store = feed_store
        # Cold-start publishes in flight; held so they are not garbage-collected.
        self._pending_publishes: set[asyncio.Task] = set()

    async def generate_personalized_core_feed(
        self, user_id: str, limit: int, cursor: Optional[str] = None
    ) -> PostPage:
        start = time.perf_counter()
        with tracer.start_as_current_span("generate_personalized_core_feed") as span:
            span.set_attribute("user.id", user_id)

            user = await self._users.find_by_public_id(user_id)
            if user is None:
                raise NotFoundError("User not found")

            top_tags, following_ids = await asyncio.gather(
                self._preferences.get_top_user_tags(user_id),
                self._get_following_ids_with_cache(user_id),
            )
            favorite_tags = [pref.tag for pref in top_tags]
            span.set_attribute("feed.following", len(following_ids))
            span.set_attribute("feed.tags", len(favorite_tags))

            cold_start = not following_ids and not favorite_tags
            span.set_attribute("feed.cold_start", cold_start)
            try:
                if cold_start:
                    COLD_START_TOTAL.inc()
                    if not cursor:
                        self._publish_cold_start(user_id)
                    page = await self._posts.get_ranked_feed_with_cursor(
                        favorite_tags, limit, cursor
                    )
                else:
                    page = await self._posts.get_feed_for_user_core_with_cursor(
                        following_ids, favorite_tags, limit, cursor
                    )
            except DatabaseError as exc:
                logger.warning("Ranked feed query failed for %s: %s — empty page", user_id, exc)
                FEED_DEGRADED_TOTAL.labels(source="ranked_query").inc()
                page = PostPage()

        FEED_LATENCY.labels(feed="core").observe(time.perf_counter() - start)
        return page

    async def get_for_you_feed(
        self, user_id: str, limit: int, cursor: Optional[str] = None
    ) -> FeedIdsPage:
        """Fan-out mailbox for a user; an unavailable store yields an empty page."""
        start = time.perf_counter()
        try:
            page = await self._feed_store.get_feed_with_cursor(user_id, limit, cursor, FOR_YOU)
        except RedisError as exc:
            logger.warning("Feed store read failed for %s: %s — empty page", user_id, exc)
            FEED_DEGRADED_TOTAL.labels(source="feed_store").inc()
            page = FeedIdsPage()
        FEED_LATENCY.labels(feed="for_you").observe(time.perf_counter() - start)
        return page

    async def get_trending_feed(self, limit: int, cursor: Optional[str] = None) -> FeedIdsPage:
        start = time.perf_counter()
        try:
            page = await self._feed_store.get_trending_feed_with_cursor(limit, cursor)
        except RedisError as exc:
            logger.warning("Trending store read failed: %s — empty page", exc)
            FEED_DEGRADED_TOTAL.labels(source="trending_store").inc()
            page = FeedIdsPage()
        FEED_LATENCY.labels(feed="trending").observe(time.perf_counter() - start)
        return page

    async def drain_publishes(self) -> None:
        """Wait for in-flight cold-start publishes (shutdown, tests)."""
        if self._pending_publishes:
            await asyncio.gather(*self._pending_publishes, return_exceptions=True)

    def _publish_cold_start(self, user_id: str) -> None:
        # Fire-and-forget: the producer may block on broker metadata, and the
        # feed request must not wait for it.
        event = ColdStartFeedGenerated(user_id=user_id)
        task = asyncio.create_task(self._event_bus.publish(event))
        self._pending_publishes.add(task)
        task.add_done_callback(lambda t: self._on_publish_done(t, user_id))

    def _on_publish_done(self, task: asyncio.Task, user_id: str) -> None:
        self._pending_publishes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to publish cold-start event for %s: %s", user_id, exc)

    async def _get_following_ids_with_cache(self, user_id: str) -> list[str]:
        """Followee ids, cached briefly to spare the graph store on every feed request."""
        key = CacheKeys.following_ids(user_id)
        try:
            cached = await get_json(self._redis, key)
        except (RedisError, ValueError) as exc:
            logger.warning("Following-ids cache read failed for %s: %s", user_id, exc)
            cached = None
        if cached is not None:
            return cached

        ids = await self._follows.get_following_ids(user_id)
        try:
            await set_json(self._redis, key, ids, settings.following_ids_ttl)
        except RedisError as exc:
            logger.warning("Following-ids cache write failed for %s: %s", user_id, exc)
        return ids
