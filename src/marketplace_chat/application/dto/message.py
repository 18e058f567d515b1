from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from marketplace_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class DecryptedMessage:
    """Transient, request-scoped plaintext view of a stored message."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_role: str
    content: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime
    decryption_error: bool = False

    @classmethod
    def from_message(
        cls,
        message: Message,
        content: str,
        *,
        decryption_error: bool = False,
    ) -> DecryptedMessage:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            sender_role=message.sender_role,
            content=content,
            is_read=message.is_read,
            read_at=message.read_at,
            created_at=message.created_at,
            decryption_error=decryption_error,
        )

    def to_event_payload(self) -> dict[str, Any]:
        """Wire shape shared by the ``new_message`` event and REST responses."""
        payload: dict[str, Any] = {
            "id": str(self.id),
            "content": self.content,
            "senderId": str(self.sender_id),
            "senderRole": self.sender_role,
            "isRead": self.is_read,
            "readAt": self.read_at.isoformat() if self.read_at else None,
            "createdAt": self.created_at.isoformat(),
        }
        if self.decryption_error:
            payload["decryptionError"] = True
        return payload
