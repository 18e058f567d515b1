from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import Role


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]: ...

    async def get_by_id(self, conversation_id: UUID, message_id: UUID) -> Message | None: ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def mark_read(
        self,
        conversation_id: UUID,
        message_id: UUID,
        reader_id: UUID,
        read_at: datetime,
    ) -> bool:
        """Flip one unread message not sent by ``reader_id``. True if a row changed."""
        ...

    async def mark_all_read(
        self,
        conversation_id: UUID,
        sender_role: Role,
        read_at: datetime,
    ) -> int:
        """Flip every unread message sent by ``sender_role``. Returns rows changed."""
        ...
