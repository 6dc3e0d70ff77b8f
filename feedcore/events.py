"""
Domain events exchanged over Kafka.

  new-posts                  PostCreated            → fan-out worker
  post-deleted               PostDeleted            → fan-out worker
  cold-start-feed-generated  ColdStartFeedGenerated → recommendation bootstrap
"""
import time
from typing import ClassVar

from pydantic import BaseModel, Field

from feedcore.config import settings


class Event(BaseModel):
    topic: ClassVar[str]
    occurred_at: float = Field(default_factory=time.time)


class PostCreated(Event):
    topic: ClassVar[str] = settings.kafka_topic_new_posts

    post_id: str
    user_id: str
    # Rank used for the follower mailboxes; defaults to the creation time.
    score: float | None = None


class PostDeleted(Event):
    topic: ClassVar[str] = settings.kafka_topic_post_deleted

    post_id: str
    user_id: str


class ColdStartFeedGenerated(Event):
    """A viewer with no follows and no tag preferences asked for a feed."""

    topic: ClassVar[str] = settings.kafka_topic_cold_start

    user_id: str
