"""
Unique post-view detection.

Each post gets its own bloom filter of viewer ids. A view counts as new when
the filter says the viewer is definitely absent; at the configured
false-positive rate a small share of genuinely new views is treated as
repeats, which is acceptable for view counters. Backend failures propagate
as DatabaseError so callers can fall back to their exact check.
"""
import logging

from feedcore.cache_keys import CacheKeys
from feedcore.config import settings
from feedcore.services.bloom_filter import BloomFilterOptions, BloomFilterService

logger = logging.getLogger(__name__)


def post_view_options() -> BloomFilterOptions:
    return BloomFilterOptions(
        expected_items=settings.bloom_post_view_expected_viewers,
        false_positive_rate=settings.bloom_post_view_false_positive_rate,
    )


class PostViewService:
    def __init__(self, bloom: BloomFilterService) -> None:
        self._bloom = bloom

    async def register_view(self, post_id: str, viewer_id: str) -> bool:
        """Return True the first time `viewer_id` is seen for `post_id`."""
        key = CacheKeys.post_view_bloom(post_id)
        options = post_view_options()
        if await self._bloom.might_contain(key, viewer_id, options):
            return False
        await self._bloom.add(key, viewer_id, options, settings.bloom_post_view_ttl)
        logger.debug("New view of %s by %s", post_id, viewer_id)
        return True

    async def register_views(self, viewer_id: str, post_ids: list[str]) -> list[str]:
        """Register several views; returns the post ids that were new."""
        new_views = []
        for post_id in post_ids:
            if await self.register_view(post_id, viewer_id):
                new_views.append(post_id)
        return new_views
