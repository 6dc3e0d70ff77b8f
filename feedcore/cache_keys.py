"""
Redis key naming.

  feed:{feed_type}:{subject_id}         ZSET  score = rank, member = post_id
  following_ids:{user_id}               STRING (JSON list), short TTL
  core_feed:{user_id}:{cursor}:{limit}  STRING (JSON page), adaptive TTL
  bf:post-view:v1:{post_id}             bitmap (bloom filter of viewer ids)
  activity:metrics                      STRING (JSON UserActivityMetrics)
  activity:recently_active_users        ZSET  score = unix ts, member = user_id
"""
from feedcore.config import settings

FOR_YOU = "for_you"

ACTIVITY_METRICS_KEY = "activity:metrics"
RECENTLY_ACTIVE_USERS_KEY = "activity:recently_active_users"


class CacheKeys:
    @staticmethod
    def feed(feed_type: str, subject_id: str) -> str:
        return f"feed:{feed_type}:{subject_id}"

    @staticmethod
    def following_ids(user_id: str) -> str:
        return f"following_ids:{user_id}"

    @staticmethod
    def core_feed(user_id: str, cursor: str | None, limit: int) -> str:
        return f"core_feed:{user_id}:{cursor or 'head'}:{limit}"

    @staticmethod
    def post_view_bloom(post_id: str) -> str:
        return f"{settings.bloom_post_view_key_prefix}:{post_id}"
