"""
Fan-out Worker — Kafka consumer.

For every 'new-posts' event:
  1. Push the post_id into each follower's for_you mailbox (one batched write).
  2. Record the post in the platform activity metrics.

For every 'post-deleted' event:
  1. Remove the post_id from each follower's mailbox.
  2. Drop it from the trending set.

Run with:  python -m feedcore.workers.fanout_worker
"""
import asyncio
import json
import logging
import time

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError as EventValidationError

from feedcore.clients.redis_client import close_redis, init_redis
from feedcore.config import settings
from feedcore.database import create_engine, create_session_factory
from feedcore.events import PostCreated, PostDeleted
from feedcore.repositories import FollowRepository
from feedcore.services.activity import UserActivityService
from feedcore.services.fanout import FeedFanoutService
from feedcore.services.feed_store import RedisFeedStore
from feedcore.telemetry import LOG_FORMAT, setup_tracing

logger = logging.getLogger(__name__)


class FanoutWorker:
    def __init__(
        self,
        fanout: FeedFanoutService,
        activity: UserActivityService,
        feed_store: RedisFeedStore,
    ) -> None:
        self._fanout = fanout
        self._activity = activity
        self._feed_store = feed_store

    async def process_message(self, topic: str, msg: dict) -> None:
        try:
            if topic == settings.kafka_topic_new_posts:
                await self.handle_post_created(PostCreated.model_validate(msg))
            elif topic == settings.kafka_topic_post_deleted:
                await self.handle_post_deleted(PostDeleted.model_validate(msg))
            else:
                logger.warning("Ignoring message on unexpected topic %s", topic)
        except EventValidationError:
            logger.warning("Malformed %s event: %s", topic, msg)

    async def handle_post_created(self, event: PostCreated) -> None:
        # Use creation time as score so newest posts rank first in mailboxes
        score = event.score if event.score is not None else event.occurred_at
        await self._fanout.fan_out_post_to_followers(event.post_id, event.user_id, score)
        await self._activity.track_post_created(event.user_id)

    async def handle_post_deleted(self, event: PostDeleted) -> None:
        await self._fanout.remove_post_from_followers(event.post_id, event.user_id)
        await self._feed_store.remove_from_trending(event.post_id)


# ─────────────────────────── Main Loop ───────────────────────────────────

async def main() -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    setup_tracing("feed-fanout-worker")

    engine = create_engine()
    redis = await init_redis()
    feed_store = RedisFeedStore(redis)
    worker = FanoutWorker(
        fanout=FeedFanoutService(FollowRepository(create_session_factory(engine)), feed_store),
        activity=UserActivityService(redis, feed_store),
        feed_store=feed_store,
    )

    consumer = AIOKafkaConsumer(
        settings.kafka_topic_new_posts,
        settings.kafka_topic_post_deleted,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        auto_offset_reset="earliest",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
    )
    await consumer.start()
    logger.info(
        "Fan-out worker listening on topics '%s', '%s'",
        settings.kafka_topic_new_posts, settings.kafka_topic_post_deleted,
    )

    try:
        async for msg in consumer:
            t0 = time.perf_counter()
            try:
                await worker.process_message(msg.topic, msg.value)
            except Exception as exc:
                logger.error("Fan-out error for %s: %s", msg.value, exc)
            logger.debug("Handled %s in %.1fms", msg.topic, (time.perf_counter() - t0) * 1000)
    finally:
        await consumer.stop()
        await close_redis()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
