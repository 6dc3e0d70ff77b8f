"""
Async Kafka producer behind a minimal event-bus interface.

publish() hands the event to the producer's send buffer and returns without
waiting for broker acknowledgement, so a slow or unavailable broker never
holds up the request that raised the event. Delivery failures surface in
the producer's own logs; enqueue failures propagate to the caller, which
decides whether they matter (for the feed core they never do).
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from feedcore.config import settings
from feedcore.events import Event

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._producer: Optional[AIOKafkaProducer] = None

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            acks="all",          # wait for all in-sync replicas
            enable_idempotence=True,
        )
        await self._producer.start()
        logger.info("Kafka producer started → %s", settings.kafka_bootstrap_servers)

    async def stop(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None

    async def publish(self, event: Event) -> None:
        if self._producer is None:
            raise RuntimeError("Kafka producer not initialised")
        # send() only enqueues; the returned future resolves on broker ack.
        await self._producer.send(event.topic, event.model_dump(mode="json"))
        logger.debug("Published %s to %s", type(event).__name__, event.topic)
