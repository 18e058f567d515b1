from __future__ import annotations

import json
import uuid

import pytest

from marketplace_chat.domain.value_objects.enums import Role
from marketplace_chat.infrastructure.ws.manager import ConnectionRegistry
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter
from tests.conftest import make_identity


class FakeConnection:
    def __init__(self, *, broken: bool = False) -> None:
        self.sent: list[dict] = []
        self.broken = broken

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise ConnectionError("socket gone")
        self.sent.append(json.loads(data))


@pytest.fixture
def limiter() -> MessageRateLimiter:
    return MessageRateLimiter(30, 60.0)


@pytest.fixture
def registry(limiter) -> ConnectionRegistry:
    return ConnectionRegistry(limiter)


def test_register_joins_personal_room(registry):
    conn = FakeConnection()
    identity = make_identity(Role.CUSTOMER)

    registry.register(conn, identity)

    assert registry.is_online(identity.user_id) is True
    assert registry.identity_of(conn) == identity
    assert registry.room_size(f"user:{identity.user_id}") == 1
    assert registry.joined_conversations(conn) == set()


@pytest.mark.asyncio
async def test_all_connections_of_a_user_receive_fan_out(registry):
    identity = make_identity(Role.VENDOR)
    phone, laptop = FakeConnection(), FakeConnection()
    registry.register(phone, identity)
    registry.register(laptop, identity)

    await registry.notify_user(identity.user_id, "conversation_updated", {"conversationId": "c1"})

    for conn in (phone, laptop):
        assert conn.sent == [{"type": "conversation_updated", "data": {"conversationId": "c1"}}]


@pytest.mark.asyncio
async def test_conversation_room_membership(registry):
    conversation_id = uuid.uuid4()
    inside, outside = FakeConnection(), FakeConnection()
    registry.register(inside, make_identity(Role.CUSTOMER))
    registry.register(outside, make_identity(Role.VENDOR))
    registry.join_room(inside, conversation_id)

    await registry.fan_out(f"conversation:{conversation_id}", "new_message", {"x": 1})

    assert len(inside.sent) == 1
    assert outside.sent == []
    assert registry.joined_conversations(inside) == {str(conversation_id)}

    registry.leave_room(inside, conversation_id)
    await registry.fan_out(f"conversation:{conversation_id}", "new_message", {"x": 2})
    assert len(inside.sent) == 1
    assert registry.room_size(f"conversation:{conversation_id}") == 0


def test_join_requires_registration(registry):
    conn = FakeConnection()
    registry.join_room(conn, uuid.uuid4())
    assert registry.connection_count == 0


def test_unregister_leaves_every_room(registry):
    conversation_id = uuid.uuid4()
    identity = make_identity(Role.CUSTOMER)
    conn = FakeConnection()
    registry.register(conn, identity)
    registry.join_room(conn, conversation_id)

    registry.unregister(conn)

    assert registry.is_online(identity.user_id) is False
    assert registry.room_size(f"conversation:{conversation_id}") == 0
    assert registry.room_size(f"user:{identity.user_id}") == 0
    assert registry.connection_count == 0
    registry.unregister(conn)


def test_rate_limit_window_discarded_only_on_last_connection(registry, limiter):
    identity = make_identity(Role.CUSTOMER)
    first, second = FakeConnection(), FakeConnection()
    registry.register(first, identity)
    registry.register(second, identity)
    limiter.check_and_consume(identity.user_id)

    registry.unregister(first)
    assert limiter.tracked_users() == 1
    assert registry.is_online(identity.user_id) is True

    registry.unregister(second)
    assert limiter.tracked_users() == 0


@pytest.mark.asyncio
async def test_failed_send_unregisters_connection(registry):
    conversation_id = uuid.uuid4()
    healthy, broken = FakeConnection(), FakeConnection(broken=True)
    broken_identity = make_identity(Role.VENDOR)
    registry.register(healthy, make_identity(Role.CUSTOMER))
    registry.register(broken, broken_identity)
    registry.join_room(healthy, conversation_id)
    registry.join_room(broken, conversation_id)

    await registry.fan_out(f"conversation:{conversation_id}", "new_message", {})

    assert len(healthy.sent) == 1
    assert registry.is_online(broken_identity.user_id) is False
    assert registry.room_size(f"conversation:{conversation_id}") == 1


@pytest.mark.asyncio
async def test_fan_out_to_empty_room_is_noop(registry):
    await registry.fan_out("conversation:nobody", "new_message", {})
