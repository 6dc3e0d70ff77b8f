"""
Fan-out on write.

A new post is pushed into every follower's for_you mailbox with one batched
write. Authors at or above fan_out_follower_cap are skipped: their posts reach
followers through the ranked (pull-on-read) feed instead of hot-writing
thousands of mailboxes.

Both directions are best-effort; a failure leaves the mailboxes stale until
their TTL expires, which the read path tolerates.
"""
import logging
import time
from typing import Optional, Protocol

from opentelemetry import trace

from feedcore.cache_keys import FOR_YOU
from feedcore.config import settings
from feedcore.services.feed_store import RedisFeedStore
from feedcore.telemetry import FANOUT_WRITES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FollowerLookup(Protocol):
    async def get_follower_ids(self, user_id: str, limit: Optional[int] = None) -> list[str]: ...


class FeedFanoutService:
    def __init__(self, follows: FollowerLookup, feed_store: RedisFeedStore) -> None:
        self._follows = follows
        self._feed_store = feed_store

    async def fan_out_post_to_followers(self, post_id: str, author_id: str, score: float) -> int:
        """Returns the number of mailboxes written (0 when skipped or failed)."""
        with tracer.start_as_current_span("fanout") as span:
            span.set_attribute("post.id", post_id)
            span.set_attribute("post.user_id", author_id)
            t0 = time.perf_counter()
            try:
                followers = await self._follows.get_follower_ids(
                    author_id, limit=settings.fan_out_follower_cap
                )
                span.set_attribute("fanout.follower_count", len(followers))

                if not followers:
                    logger.info("Post %s — author has no followers, skipping fan-out", post_id)
                    return 0

                if len(followers) >= settings.fan_out_follower_cap:
                    logger.info(
                        "Post %s — author %s is a celebrity (%d+ followers), "
                        "skipping fan-out (ranked feed will serve this content)",
                        post_id, author_id, len(followers),
                    )
                    return 0

                await self._feed_store.add_to_feeds_batch(followers, post_id, score, FOR_YOU)
            except Exception as exc:
                logger.error("Fan-out failed for post %s: %s", post_id, exc)
                return 0

            FANOUT_WRITES_TOTAL.inc(len(followers))
            logger.info(
                "Fan-out complete: post %s → %d followers (%.1fms)",
                post_id, len(followers), (time.perf_counter() - t0) * 1000,
            )
            return len(followers)

    async def remove_post_from_followers(self, post_id: str, author_id: str) -> None:
        try:
            followers = await self._follows.get_follower_ids(author_id)
            if not followers:
                return
            await self._feed_store.remove_from_feeds_batch(followers, post_id, FOR_YOU)
            logger.info("Removed post %s from %d followers' feeds", post_id, len(followers))
        except Exception as exc:
            logger.error("Failed to remove post %s from feeds: %s", post_id, exc)
