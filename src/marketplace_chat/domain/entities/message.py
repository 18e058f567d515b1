from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    """A stored message. ``encrypted_content`` is the codec output, never plaintext."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_role: str
    encrypted_content: str
    content_hash: str
    is_compressed: bool
    created_at: datetime
    is_read: bool = False
    read_at: datetime | None = None
    client_msg_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class ArchivedMessage:
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_role: str
    encrypted_content: str
    content_hash: str
    is_compressed: bool
    created_at: datetime
    archived_at: datetime
    is_read: bool = True
    read_at: datetime | None = None
    client_msg_id: UUID | None = None
