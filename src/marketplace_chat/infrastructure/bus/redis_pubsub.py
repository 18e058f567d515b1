"""Redis Pub/Sub relay for fan-out across service instances.

Every instance publishes room events to one channel and runs a subscriber
that replays them into its local connection registry.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

import redis.asyncio as aioredis

from marketplace_chat.domain.value_objects.enums import RoomKind
from marketplace_chat.domain.value_objects.ids import room_key
from marketplace_chat.infrastructure.bus.serializer import deserialize_fanout, serialize_fanout
from marketplace_chat.infrastructure.ws.manager import ConnectionRegistry

logger = logging.getLogger(__name__)


class RedisBroadcaster:
    """Implements application.ports.bus.Broadcaster over Redis Pub/Sub."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def fan_out(self, room: str, event: str, payload: dict[str, Any]) -> None:
        await self._redis.publish(self._channel, serialize_fanout(room, event, payload))

    async def notify_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        await self.fan_out(room_key(RoomKind.USER, user_id), event, payload)


class RedisPubSubSubscriber:
    """Background task that listens to the fan-out channel and delivers locally."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        registry: ConnectionRegistry,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._registry = registry
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-fanout-subscriber")
        logger.info("Redis fan-out subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Redis fan-out subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    room, event, data = deserialize_fanout(message["data"])
                    await self._registry.fan_out(room, event, data)
                except Exception:
                    logger.exception("Error delivering fan-out message")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
