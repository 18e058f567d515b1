from __future__ import annotations

import json
import uuid

import pytest

from marketplace_chat.domain.value_objects.enums import Role, RoomKind
from marketplace_chat.domain.value_objects.ids import room_key
from marketplace_chat.infrastructure.bus.redis_pubsub import RedisBroadcaster, RedisPubSubSubscriber
from marketplace_chat.infrastructure.bus.serializer import deserialize_fanout, serialize_fanout
from marketplace_chat.infrastructure.ws.manager import ConnectionRegistry
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter
from tests.conftest import make_identity


class FakePubSub:
    def __init__(self, messages: list[dict]) -> None:
        self._messages = messages
        self.subscribed: list[str] = []
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        self.subscribed.append(channel)

    async def unsubscribe(self, channel: str) -> None:
        self.subscribed.remove(channel)

    async def aclose(self) -> None:
        self.closed = True

    async def listen(self):
        for message in self._messages:
            yield message


class FakeRedis:
    def __init__(self, messages: list[dict] | None = None) -> None:
        self.published: list[tuple[str, str]] = []
        self.pubsub_instance = FakePubSub(messages or [])

    async def publish(self, channel: str, data: str) -> int:
        self.published.append((channel, data))
        return 1

    def pubsub(self) -> FakePubSub:
        return self.pubsub_instance


class FakeConnection:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))


def test_envelope_carries_uuids_as_strings():
    cid = uuid.uuid4()
    raw = serialize_fanout("conversation:x", "new_message", {"conversationId": cid})

    assert deserialize_fanout(raw) == ("conversation:x", "new_message", {"conversationId": str(cid)})


@pytest.mark.asyncio
async def test_broadcaster_publishes_to_user_room():
    redis = FakeRedis()
    user_id = uuid.uuid4()

    await RedisBroadcaster(redis, "chat.fanout").notify_user(user_id, "conversation_updated", {"a": 1})

    [(channel, data)] = redis.published
    assert channel == "chat.fanout"
    assert deserialize_fanout(data) == (room_key(RoomKind.USER, user_id), "conversation_updated", {"a": 1})


@pytest.mark.asyncio
async def test_subscriber_delivers_into_local_registry():
    registry = ConnectionRegistry(MessageRateLimiter(30, 60.0))
    identity = make_identity(Role.VENDOR)
    conn = FakeConnection()
    registry.register(conn, identity)

    room = room_key(RoomKind.USER, identity.user_id)
    redis = FakeRedis([
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": "not json"},
        {"type": "message", "data": serialize_fanout(room, "messages_read", {"conversationId": "c1"})},
    ])
    subscriber = RedisPubSubSubscriber(redis, "chat.fanout", registry)

    # the fake stream ends, so the listener returns on its own
    await subscriber._listen()

    assert conn.sent == [{"type": "messages_read", "data": {"conversationId": "c1"}}]
    assert redis.pubsub_instance.closed is True
    assert redis.pubsub_instance.subscribed == []
