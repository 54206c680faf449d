"""Redis Pub/Sub: publish side + subscriber background task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from anonpro_dm.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        await self._redis.publish(channel, serialize_event(event_type, payload))


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel (or glob pattern) and dispatches events."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        pattern: bool = False,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._pattern = pattern
        self._task: asyncio.Task[None] | None = None

    @property
    def channel(self) -> str:
        return self._channel

    async def start(self) -> None:
        self._task = asyncio.create_task(
            self._listen(), name=f"redis-pubsub-{self._channel}",
        )
        logger.info("Redis Pub/Sub subscriber started on %s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Redis Pub/Sub subscriber stopped on %s", self._channel)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        if self._pattern:
            await pubsub.psubscribe(self._channel)
        else:
            await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] not in ("message", "pmessage"):
                    continue
                try:
                    event_type, data = deserialize_event(message["data"])
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error processing pubsub message on %s", self._channel)
        finally:
            if self._pattern:
                await pubsub.punsubscribe(self._channel)
            else:
                await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
