"""RealtimeTransport over the service's Redis Pub/Sub change feed."""
from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis

from anonpro_dm.client.ports import OnEventCallback
from anonpro_dm.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)


class RedisRealtimeTransport:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis
        self._publisher = RedisPubSubPublisher(redis)

    async def subscribe(self, channel: str, callback: OnEventCallback) -> RedisPubSubSubscriber:
        subscriber = RedisPubSubSubscriber(self._redis, channel, callback)
        await subscriber.start()
        return subscriber

    async def broadcast(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        await self._publisher.publish(channel, event_type, payload)
