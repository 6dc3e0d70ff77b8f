"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible): users, follows, ranked posts ────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "social_feed"

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_new_posts: str = "new-posts"
    kafka_topic_post_deleted: str = "post-deleted"
    kafka_topic_cold_start: str = "cold-start-feed-generated"
    kafka_consumer_group: str = "feed-fanout-worker"

    # ── Sorted-set feed store ──────────────────────────────────────────────
    feed_ttl: int = 3600                 # for_you mailboxes are a cache, not a log
    feed_cursor_overfetch: int = 10      # extra candidates read past the cursor
    trending_key: str = "trending:posts"

    # ── Personalized feed ──────────────────────────────────────────────────
    following_ids_ttl: int = 60
    feed_page_size: int = 20
    feed_max_page_size: int = 100
    top_tags_limit: int = 5

    # ── Bloom filters ──────────────────────────────────────────────────────
    bloom_post_view_key_prefix: str = "bf:post-view:v1"
    bloom_post_view_expected_viewers: int = 200_000
    bloom_post_view_false_positive_rate: float = 0.001
    bloom_post_view_ttl: int = 60 * 60 * 24 * 180

    # ── Platform activity (posts/hour) ─────────────────────────────────────
    activity_high_posts_per_hour: float = 20
    activity_medium_posts_per_hour: float = 5
    activity_low_posts_per_hour: float = 1
    activity_dormant_hours: float = 12
    activity_decay_hours: float = 12
    activity_metrics_ttl: int = 604800   # 7 days
    recently_active_days: int = 7

    # ── Adaptive cache TTLs (seconds) ──────────────────────────────────────
    ttl_high_activity: int = 300
    ttl_medium_activity: int = 900
    ttl_low_activity: int = 1800
    ttl_dormant: int = 7200

    # Fan-out cap: skip fan-out for authors with >=N followers (celebrities)
    fan_out_follower_cap: int = 10_000

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "feed-core"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
