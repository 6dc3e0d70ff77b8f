"""
Platform activity tracking for adaptive cache lifetimes.

Every "post created" event updates one process-wide record in Redis:

  post_count           exponentially decayed running count (12h scale)
  recent_post_count    posts in the current fixed 1-hour window
  recent_window_start  start of that window (unix seconds)
  last_updated         time of the most recent post

The decayed count smooths bursts; the 1-hour window gives a responsive
posts/hour rate. The rate, gated by time since the last post, classifies the
platform as high / medium / low / dormant, and the level picks a cache TTL:
busy platforms get short TTLs, quiet ones long TTLs.

Tracking is best-effort. A Redis failure is logged and never reaches the
request that created the post.
"""
import logging
import math
import time
from enum import Enum
from typing import Callable, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel

from feedcore.cache_keys import ACTIVITY_METRICS_KEY, RECENTLY_ACTIVE_USERS_KEY
from feedcore.clients.redis_client import get_json, set_json
from feedcore.config import settings
from feedcore.services.feed_store import RedisFeedStore

logger = logging.getLogger(__name__)

HOUR = 3600.0
DAY = 86400.0
MIN_WINDOW_HOURS = 0.1


class ActivityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    DORMANT = "dormant"


class UserActivityMetrics(BaseModel):
    post_count: float
    last_updated: float
    recent_post_count: int
    recent_window_start: float
    unique_posters: int


def advance_metrics(existing: Optional[UserActivityMetrics], now: float) -> UserActivityMetrics:
    """Fold one new post at time `now` into the metrics record."""
    if existing is None:
        return UserActivityMetrics(
            post_count=1,
            last_updated=now,
            recent_post_count=1,
            recent_window_start=now,
            unique_posters=1,
        )

    hours_since_update = (now - existing.last_updated) / HOUR
    decayed = existing.post_count * math.exp(-hours_since_update / settings.activity_decay_hours)

    if now - existing.recent_window_start > HOUR:
        recent_post_count = 1
        recent_window_start = now
    else:
        recent_post_count = existing.recent_post_count + 1
        recent_window_start = existing.recent_window_start

    # Rough poster estimate; a HyperLogLog would be exact-ish but this is enough
    # for picking a strategy.
    unique_posters = max(existing.unique_posters, math.ceil(decayed / 3))
    if hours_since_update > 1:
        unique_posters += 1

    return UserActivityMetrics(
        post_count=decayed + 1,
        last_updated=now,
        recent_post_count=recent_post_count,
        recent_window_start=recent_window_start,
        unique_posters=unique_posters,
    )


def classify_activity_level(posts_per_hour: float, hours_since_last_activity: float) -> ActivityLevel:
    if hours_since_last_activity > settings.activity_dormant_hours:
        return ActivityLevel.DORMANT
    if posts_per_hour >= settings.activity_high_posts_per_hour:
        return ActivityLevel.HIGH
    if posts_per_hour >= settings.activity_medium_posts_per_hour:
        return ActivityLevel.MEDIUM
    if posts_per_hour >= settings.activity_low_posts_per_hour:
        return ActivityLevel.LOW
    return ActivityLevel.DORMANT


def ttl_for_level(level: ActivityLevel) -> int:
    if level is ActivityLevel.HIGH:
        return settings.ttl_high_activity
    if level is ActivityLevel.MEDIUM:
        return settings.ttl_medium_activity
    if level is ActivityLevel.LOW:
        return settings.ttl_low_activity
    return settings.ttl_dormant


def ttl_to_human(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    if seconds < 86400:
        return f"{round(seconds / 3600)}h"
    return f"{round(seconds / 86400)}d"


class UserActivityService:
    def __init__(
        self,
        redis: aioredis.Redis,
        feed_store: RedisFeedStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._feed_store = feed_store
        self._clock = clock

    async def track_post_created(self, user_id: str) -> None:
        """Record that `user_id` just posted. Never raises."""
        now = self._clock()
        try:
            existing = await self.get_activity_metrics()
            updated = advance_metrics(existing, now)
            await set_json(
                self._redis,
                ACTIVITY_METRICS_KEY,
                updated.model_dump(),
                settings.activity_metrics_ttl,
            )
            await self._track_recently_active_user(user_id, now)
            logger.debug("Tracked post created by %s", user_id)
        except Exception as exc:
            logger.warning("Error tracking activity for %s: %s", user_id, exc)

    async def _track_recently_active_user(self, user_id: str, now: float) -> None:
        cutoff = now - settings.recently_active_days * DAY
        try:
            await self._feed_store.add_and_prune(
                RECENTLY_ACTIVE_USERS_KEY,
                now,
                user_id,
                prune_below=cutoff,
                ttl=settings.activity_metrics_ttl,
            )
        except Exception as exc:
            logger.warning("Error tracking recently active user %s: %s", user_id, exc)

    async def get_recently_active_users(self, days: Optional[int] = None) -> list[str]:
        """User ids that posted within the last `days` days, oldest first."""
        window = settings.recently_active_days if days is None else days
        cutoff = self._clock() - window * DAY
        try:
            return await self._feed_store.zrange_by_score(
                RECENTLY_ACTIVE_USERS_KEY, str(cutoff), "+inf"
            )
        except Exception as exc:
            logger.warning("Error reading recently active users: %s", exc)
            return []

    async def get_activity_metrics(self) -> Optional[UserActivityMetrics]:
        raw = await get_json(self._redis, ACTIVITY_METRICS_KEY)
        if raw is None:
            return None
        return UserActivityMetrics.model_validate(raw)

    async def get_platform_activity_level(self) -> ActivityLevel:
        try:
            metrics = await self.get_activity_metrics()
        except Exception as exc:
            logger.warning("Error reading activity metrics: %s", exc)
            return ActivityLevel.DORMANT

        if metrics is None:
            # never tracked, or expired: treat as a quiet platform
            return ActivityLevel.DORMANT

        now = self._clock()
        hours_since_window_start = max(MIN_WINDOW_HOURS, (now - metrics.recent_window_start) / HOUR)
        posts_per_hour = metrics.recent_post_count / hours_since_window_start
        hours_since_last_activity = (now - metrics.last_updated) / HOUR
        return classify_activity_level(posts_per_hour, hours_since_last_activity)

    async def calculate_dynamic_ttl(self) -> int:
        return ttl_for_level(await self.get_platform_activity_level())
