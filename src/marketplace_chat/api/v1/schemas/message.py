from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from marketplace_chat.api.v1.schemas.common import CamelModel


class SendMessageRequest(CamelModel):
    content: Any = None
    client_msg_id: Any = None


class MessageOut(CamelModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_role: str
    content: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime
    decryption_error: bool = False


class MessageList(CamelModel):
    messages: list[MessageOut]
    next_cursor: str | None = None


class MessageSent(CamelModel):
    message: MessageOut


class ReadReceipt(CamelModel):
    updated: bool


class BulkReadReceipt(CamelModel):
    updated: int
