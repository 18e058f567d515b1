from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from marketplace_chat.api.v1.schemas.common import CamelModel


class CreateConversationRequest(CamelModel):
    # validated by the service so bad ids surface as 400 with a readable message
    vendor_id: Any = None


class ConversationOut(CamelModel):
    id: UUID
    counterpart_id: UUID
    unread_count: int
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ConversationList(CamelModel):
    conversations: list[ConversationOut]


class ConversationCreated(CamelModel):
    conversation_id: UUID
    created: bool


class UnreadCount(CamelModel):
    unread_count: int
