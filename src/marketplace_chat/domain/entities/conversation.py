from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from marketplace_chat.domain.value_objects.enums import Role


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    customer_id: UUID
    vendor_id: UUID
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime | None = None
    customer_unread_count: int = 0
    vendor_unread_count: int = 0

    def participant_id(self, role: Role) -> UUID:
        return self.customer_id if role == Role.CUSTOMER else self.vendor_id

    def unread_for(self, role: Role) -> int:
        count = self.customer_unread_count if role == Role.CUSTOMER else self.vendor_unread_count
        return max(0, count)
