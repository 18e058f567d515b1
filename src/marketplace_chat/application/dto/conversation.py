from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    """A conversation as seen by one participant."""

    id: UUID
    counterpart_id: UUID
    unread_count: int
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
