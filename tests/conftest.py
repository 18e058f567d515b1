"""Shared test fixtures."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt
import pytest

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import ConflictError
from marketplace_chat.config import settings
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import ArchivedMessage, Message
from marketplace_chat.domain.value_objects.enums import Role, RoomKind
from marketplace_chat.domain.value_objects.ids import room_key
from marketplace_chat.infrastructure.crypto.codec import MessageCodec
from marketplace_chat.infrastructure.db.repositories._cursor import decode_cursor
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter
from marketplace_chat.services.message_service import MessagePipeline

TEST_SECRET = "unit-test-encryption-secret-0123456789"
OTHER_SECRET = "a-completely-different-secret-9876543210"


def make_identity(role: str = Role.CUSTOMER, user_id: UUID | None = None) -> Identity:
    return Identity(user_id=user_id or uuid.uuid4(), role=role)


def make_token(user_id: UUID, role: str) -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth(user_id: UUID, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


def make_conversation(
    *,
    conversation_id: UUID | None = None,
    customer_id: UUID | None = None,
    vendor_id: UUID | None = None,
    customer_unread: int = 0,
    vendor_unread: int = 0,
    last_message_at: datetime | None = None,
) -> Conversation:
    now = datetime.now(timezone.utc)
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        customer_id=customer_id or uuid.uuid4(),
        vendor_id=vendor_id or uuid.uuid4(),
        created_at=now,
        updated_at=now,
        last_message_at=last_message_at,
        customer_unread_count=customer_unread,
        vendor_unread_count=vendor_unread,
    )


def make_message(
    codec: MessageCodec,
    conversation: Conversation,
    *,
    sender_role: Role = Role.CUSTOMER,
    text: str = "hello",
    created_at: datetime | None = None,
    is_read: bool = False,
) -> Message:
    encoded = codec.encrypt(text)
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation.id,
        sender_id=conversation.participant_id(sender_role),
        sender_role=sender_role.value,
        encrypted_content=encoded.ciphertext,
        content_hash=encoded.content_hash,
        is_compressed=encoded.is_compressed,
        created_at=created_at or datetime.now(timezone.utc),
        is_read=is_read,
        read_at=created_at if is_read else None,
    )


def _unread_field(role: Role) -> str:
    return "customer_unread_count" if role == Role.CUSTOMER else "vendor_unread_count"


@dataclass
class FakeConversationReader:
    _store: dict[UUID, Conversation] = field(default_factory=dict)

    def add(self, conversation: Conversation) -> Conversation:
        self._store[conversation.id] = conversation
        return conversation

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.get(conversation_id)

    async def get_by_pair(self, customer_id: UUID, vendor_id: UUID) -> Conversation | None:
        for c in self._store.values():
            if c.customer_id == customer_id and c.vendor_id == vendor_id:
                return c
        return None

    async def list_for_participant(self, role: Role, user_id: UUID, *, limit: int = 100) -> list[Conversation]:
        mine = [c for c in self._store.values() if c.participant_id(role) == user_id]
        floor = datetime.min.replace(tzinfo=timezone.utc)
        mine.sort(key=lambda c: (c.last_message_at is not None, c.last_message_at or floor), reverse=True)
        return mine[:limit]

    async def unread_total(self, role: Role, user_id: UUID) -> int:
        return sum(c.unread_for(role) for c in self._store.values() if c.participant_id(role) == user_id)


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    # Inserted "by another request" right before our insert, to exercise the conflict path.
    race_winner: Conversation | None = None

    async def create(self, conversation: Conversation) -> Conversation:
        if self.race_winner is not None:
            self._reader.add(self.race_winner)
            self.race_winner = None
        if await self._reader.get_by_pair(conversation.customer_id, conversation.vendor_id):
            raise ConflictError("Conversation already exists for this customer and vendor")
        return self._reader.add(conversation)

    async def record_new_message(self, conversation_id: UUID, sender_role: Role, ts: datetime) -> None:
        conv = self._reader._store[conversation_id]
        name = _unread_field(Role(sender_role).counterpart)
        self._reader._store[conversation_id] = replace(
            conv, **{name: getattr(conv, name) + 1, "last_message_at": ts, "updated_at": ts},
        )

    async def decrement_unread(self, conversation_id: UUID, reader_role: Role, count: int) -> None:
        conv = self._reader._store[conversation_id]
        name = _unread_field(reader_role)
        self._reader._store[conversation_id] = replace(conv, **{name: max(getattr(conv, name) - count, 0)})


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    def add(self, *messages: Message) -> None:
        self._messages.extend(messages)

    async def list_messages(self, conversation_id: UUID, *, cursor: str | None = None, limit: int = 50) -> list[Message]:
        rows = sorted(
            (m for m in self._messages if m.conversation_id == conversation_id),
            key=lambda m: (m.created_at, m.id),
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            rows = [m for m in rows if (m.created_at, m.id) > (ts, mid)]
        return rows[:limit]

    async def get_by_id(self, conversation_id: UUID, message_id: UUID) -> Message | None:
        for m in self._messages:
            if m.id == message_id and m.conversation_id == conversation_id:
                return m
        return None


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        if message.client_msg_id is not None:
            for m in self._reader._messages:
                if (
                    m.conversation_id == message.conversation_id
                    and m.sender_id == message.sender_id
                    and m.client_msg_id == message.client_msg_id
                ):
                    return m, False
        self._reader._messages.append(message)
        return message, True

    def _flip(self, index: int, read_at: datetime) -> None:
        self._reader._messages[index] = replace(self._reader._messages[index], is_read=True, read_at=read_at)

    async def mark_read(self, conversation_id: UUID, message_id: UUID, reader_id: UUID, read_at: datetime) -> bool:
        for i, m in enumerate(self._reader._messages):
            if (
                m.id == message_id
                and m.conversation_id == conversation_id
                and m.sender_id != reader_id
                and not m.is_read
            ):
                self._flip(i, read_at)
                return True
        return False

    async def mark_all_read(self, conversation_id: UUID, sender_role: Role, read_at: datetime) -> int:
        flipped = 0
        for i, m in enumerate(self._reader._messages):
            if m.conversation_id == conversation_id and m.sender_role == sender_role and not m.is_read:
                self._flip(i, read_at)
                flipped += 1
        return flipped


@dataclass
class FakeArchiveRepo:
    _hot: FakeMessageReader
    _cold: dict[UUID, ArchivedMessage] = field(default_factory=dict)
    fail_delete_from_hot: bool = False
    fail_delete_from_archive: bool = False

    async def select_archivable(self, cutoff: datetime, limit: int) -> list[Message]:
        rows = sorted(
            (m for m in self._hot._messages if m.created_at < cutoff and m.is_read),
            key=lambda m: (m.created_at, m.id),
        )
        return rows[:limit]

    async def copy_to_archive(self, messages: list[Message], archived_at: datetime) -> None:
        for m in messages:
            self._cold.setdefault(
                m.id,
                ArchivedMessage(
                    id=m.id,
                    conversation_id=m.conversation_id,
                    sender_id=m.sender_id,
                    sender_role=m.sender_role,
                    encrypted_content=m.encrypted_content,
                    content_hash=m.content_hash,
                    is_compressed=m.is_compressed,
                    created_at=m.created_at,
                    archived_at=archived_at,
                    is_read=m.is_read,
                    read_at=m.read_at,
                    client_msg_id=m.client_msg_id,
                ),
            )

    async def delete_from_hot(self, message_ids: list[UUID]) -> int:
        if self.fail_delete_from_hot:
            raise RuntimeError("delete failed")
        ids = set(message_ids)
        before = len(self._hot._messages)
        self._hot._messages[:] = [m for m in self._hot._messages if m.id not in ids]
        return before - len(self._hot._messages)

    async def get_archived(self, message_ids: list[UUID]) -> list[ArchivedMessage]:
        return [self._cold[i] for i in message_ids if i in self._cold]

    async def copy_to_hot(self, messages: list[ArchivedMessage]) -> None:
        existing = {m.id for m in self._hot._messages}
        for a in messages:
            if a.id in existing:
                continue
            self._hot._messages.append(
                Message(
                    id=a.id,
                    conversation_id=a.conversation_id,
                    sender_id=a.sender_id,
                    sender_role=a.sender_role,
                    encrypted_content=a.encrypted_content,
                    content_hash=a.content_hash,
                    is_compressed=a.is_compressed,
                    created_at=a.created_at,
                    is_read=a.is_read,
                    read_at=a.read_at,
                    client_msg_id=a.client_msg_id,
                )
            )

    async def delete_from_archive(self, message_ids: list[UUID]) -> int:
        if self.fail_delete_from_archive:
            raise RuntimeError("delete failed")
        return sum(1 for i in message_ids if self._cold.pop(i, None) is not None)

    async def list_archived(self, conversation_id: UUID, *, limit: int = 50, offset: int = 0) -> list[ArchivedMessage]:
        rows = sorted(
            (a for a in self._cold.values() if a.conversation_id == conversation_id),
            key=lambda a: a.created_at,
            reverse=True,
        )
        return rows[offset:offset + limit]

    async def count_and_size(self, *, archived: bool) -> tuple[int, int]:
        rows = list(self._cold.values()) if archived else self._hot._messages
        return len(rows), sum(len(r.encrypted_content.encode()) for r in rows)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    archive: FakeArchiveRepo | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.archive is None:
            self.archive = FakeArchiveRepo(self.messages)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    def conversation(self, conversation_id: UUID) -> Conversation:
        return self.conversations._store[conversation_id]

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def uow_factory_for(uow: FakeUoW):
    @asynccontextmanager
    async def _factory():
        yield uow

    return _factory


@dataclass
class FakeBroadcaster:
    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def fan_out(self, room: str, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("broadcast failed")
        self.events.append((room, event, payload))

    async def notify_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        await self.fan_out(room_key(RoomKind.USER, user_id), event, payload)

    def named(self, event: str) -> list[tuple[str, dict[str, Any]]]:
        return [(room, payload) for room, e, payload in self.events if e == event]


@dataclass
class FakePresence:
    online: set[UUID] = field(default_factory=set)

    def is_online(self, user_id: UUID) -> bool:
        return user_id in self.online


@dataclass
class FakeNotifier:
    calls: list[tuple[UUID, str, UUID]] = field(default_factory=list)
    fail: bool = False

    async def notify_new_message(self, recipient_id: UUID, recipient_role: str, conversation_id: UUID) -> None:
        if self.fail:
            raise RuntimeError("mail collaborator down")
        self.calls.append((recipient_id, recipient_role, conversation_id))


class ManualClock:
    """Clock whose monotonic time only moves when told to."""

    def __init__(self) -> None:
        self._wall = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._mono = 1000.0

    def now(self) -> datetime:
        self._wall += timedelta(milliseconds=1)
        return self._wall

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._mono += seconds
        self._wall += timedelta(seconds=seconds)


@pytest.fixture(scope="session")
def codec() -> MessageCodec:
    return MessageCodec(TEST_SECRET)


@pytest.fixture(scope="session")
def other_codec() -> MessageCodec:
    return MessageCodec(OTHER_SECRET)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def broadcaster() -> FakeBroadcaster:
    return FakeBroadcaster()


@pytest.fixture
def presence() -> FakePresence:
    return FakePresence()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def rate_limiter(clock) -> MessageRateLimiter:
    return MessageRateLimiter(30, 60.0, monotonic=clock.monotonic)


@pytest.fixture
def pipeline(codec, rate_limiter, broadcaster, presence, notifier, clock) -> MessagePipeline:
    return MessagePipeline(
        codec,
        rate_limiter,
        broadcaster,
        presence,
        notifier,
        clock=clock,
        db_timeout=1.0,
        codec_timeout=5.0,
        page_limit=1000,
    )


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def conversation(uow) -> Conversation:
    return uow.conversations.add(make_conversation())


@pytest.fixture
def customer(conversation) -> Identity:
    return Identity(user_id=conversation.customer_id, role=Role.CUSTOMER.value)


@pytest.fixture
def vendor(conversation) -> Identity:
    return Identity(user_id=conversation.vendor_id, role=Role.VENDOR.value)
