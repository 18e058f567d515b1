from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.value_objects.enums import Role


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_by_pair(self, customer_id: UUID, vendor_id: UUID) -> Conversation | None: ...

    async def list_for_participant(
        self, role: Role, user_id: UUID, *, limit: int = 100
    ) -> list[Conversation]:
        """Most recently active first; conversations without messages last."""
        ...

    async def unread_total(self, role: Role, user_id: UUID) -> int: ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation:
        """Insert. Raise ConflictError if the (customer, vendor) pair already exists."""
        ...

    async def record_new_message(
        self, conversation_id: UUID, sender_role: Role, ts: datetime
    ) -> None:
        """Advance last_message_at/updated_at and bump the counterpart's unread counter."""
        ...

    async def decrement_unread(
        self, conversation_id: UUID, reader_role: Role, count: int
    ) -> None:
        """Lower the reader's unread counter by ``count``, floored at zero."""
        ...
