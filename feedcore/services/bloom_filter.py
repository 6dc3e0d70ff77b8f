"""
Redis-backed bloom filters.

A filter is a plain Redis string used as a bitmap (GETBIT/SETBIT), addressed
by its key. The shape (bit size, probe count) is derived from the expected
item count and target false-positive rate on every call, so callers must
pass the same options for a key every time.

Probe positions use double hashing: two independent digests a, b give
index_i = (a + i·b) mod m for i in [0, k). All k bit reads (or writes) for
one item go out in a single MULTI round trip.
"""
import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from feedcore.errors import DatabaseError, ValidationError
from feedcore.telemetry import BLOOM_OPERATIONS_TOTAL

logger = logging.getLogger(__name__)

MIN_BIT_SIZE = 8
MIN_HASH_COUNT = 1


@dataclass(frozen=True)
class BloomFilterOptions:
    expected_items: int
    false_positive_rate: float


@dataclass(frozen=True)
class BloomFilterShape:
    bit_size: int
    hash_count: int


def compute_shape(options: BloomFilterOptions) -> BloomFilterShape:
    """
    Standard sizing:
      m = ceil(-n·ln(p) / ln(2)²)     (at least 8 bits)
      k = round(m/n · ln(2))          (at least 1 probe)
    """
    n = options.expected_items
    p = options.false_positive_rate
    if not isinstance(n, (int, float)) or not math.isfinite(n) or n <= 0:
        raise ValidationError("Bloom filter expected_items must be a positive number")
    if not isinstance(p, (int, float)) or not math.isfinite(p) or p <= 0 or p >= 1:
        raise ValidationError("Bloom filter false_positive_rate must be between 0 and 1")

    ln2 = math.log(2)
    bit_size = max(MIN_BIT_SIZE, math.ceil((-n * math.log(p)) / (ln2 * ln2)))
    hash_count = max(MIN_HASH_COUNT, round((bit_size / n) * ln2))
    return BloomFilterShape(bit_size=bit_size, hash_count=hash_count)


def compute_indexes(item: str, shape: BloomFilterShape) -> list[int]:
    data = item.encode("utf-8")
    a = int.from_bytes(hashlib.sha256(data).digest()[:8], "big")
    b = int.from_bytes(hashlib.sha1(data).digest()[:8], "big")
    if b == 0:
        b = 1
    return [(a + i * b) % shape.bit_size for i in range(shape.hash_count)]


class BloomFilterService:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def might_contain(self, key: str, item: str, options: BloomFilterOptions) -> bool:
        """True if `item` may have been added; False means it definitely was not."""
        indexes = compute_indexes(item, compute_shape(options))

        pipe = self._redis.pipeline(transaction=True)
        for index in indexes:
            pipe.getbit(key, index)
        try:
            result = await pipe.execute()
        except RedisError as exc:
            raise DatabaseError(f"Bloom filter read failed for {key}") from exc
        BLOOM_OPERATIONS_TOTAL.labels(op="check").inc()

        if not result:
            raise DatabaseError("Bloom filter read pipeline returned empty result")
        return all(bit == 1 for bit in result)

    async def add(
        self,
        key: str,
        item: str,
        options: BloomFilterOptions,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        indexes = compute_indexes(item, compute_shape(options))
        if ttl_seconds is not None and (
            not isinstance(ttl_seconds, (int, float))
            or not math.isfinite(ttl_seconds)
            or ttl_seconds <= 0
        ):
            raise ValidationError("Bloom filter TTL must be a positive number")

        pipe = self._redis.pipeline(transaction=True)
        for index in indexes:
            pipe.setbit(key, index, 1)
        if ttl_seconds is not None:
            pipe.expire(key, max(1, int(ttl_seconds)))
        try:
            result = await pipe.execute()
        except RedisError as exc:
            raise DatabaseError(f"Bloom filter write failed for {key}") from exc
        BLOOM_OPERATIONS_TOTAL.labels(op="add").inc()

        if not result:
            raise DatabaseError("Bloom filter write pipeline returned empty result")
